"""
Tests for the token broker.

Credentials live in an in-memory database; token renewal is served by a
fake renewer that records its calls and can be held open to overlap
concurrent callers.
"""

import asyncio
from datetime import timedelta
from typing import List, Optional

import pytest

from fintrack.auth.broker import SubjectKind, TokenBroker
from fintrack.auth.credentials import CredentialStore
from fintrack.errors import AuthError, CredentialsNotFoundError, NetworkError
from fintrack.truelayer.models import TokenResponse
from tests.conftest import seed_account, seed_provider
from tests.fixtures.truelayer import NOW, token_response


class FakeRenewer:
    def __init__(self, response: Optional[TokenResponse] = None, error: Optional[Exception] = None):
        self.response = response or token_response("renewed-access", expires_in=3600)
        self.error = error
        self.calls: List[str] = []
        self.started = asyncio.Event()
        self.release: Optional[asyncio.Event] = None

    def hold(self) -> None:
        """Block renewals until ``release`` is set."""
        self.release = asyncio.Event()

    async def renew_token(self, refresh_token: str) -> TokenResponse:
        self.calls.append(refresh_token)
        self.started.set()
        if self.release is not None:
            await self.release.wait()
        if self.error is not None:
            raise self.error
        return self.response


def make_broker(session_factory, clock, renewer: FakeRenewer):
    store = CredentialStore(session_factory)
    return TokenBroker(store, renewer, clock=clock), store


@pytest.mark.asyncio
class TestTokenFreshness:
    async def test_fresh_token_is_reused(self, session_factory, clock):
        await seed_provider(session_factory, expires_at=NOW + timedelta(minutes=1))
        renewer = FakeRenewer()
        broker, _ = make_broker(session_factory, clock, renewer)

        token = await broker.get_token(SubjectKind.PROVIDER, "ob-monzo")

        assert token == "stored-access"
        assert renewer.calls == []

    async def test_expiry_instant_counts_as_expired(self, session_factory, clock):
        await seed_provider(session_factory, expires_at=NOW)
        renewer = FakeRenewer()
        broker, _ = make_broker(session_factory, clock, renewer)

        token = await broker.get_token("provider", "ob-monzo")

        assert token == "renewed-access"
        assert renewer.calls == ["stored-refresh"]

    async def test_one_second_before_expiry_is_fresh(self, session_factory, clock):
        await seed_provider(session_factory, expires_at=NOW + timedelta(seconds=1))
        renewer = FakeRenewer()
        broker, _ = make_broker(session_factory, clock, renewer)

        assert await broker.token_for_provider("ob-monzo") == "stored-access"
        assert renewer.calls == []

    async def test_refresh_persists_new_pair(self, session_factory, clock):
        await seed_provider(session_factory, expires_at=NOW - timedelta(hours=1))
        renewer = FakeRenewer()
        broker, store = make_broker(session_factory, clock, renewer)

        await broker.token_for_provider("ob-monzo")

        stored = await store.for_provider("ob-monzo")
        assert stored.access_token == "renewed-access"
        assert stored.refresh_token == "renewed-access-refresh"
        assert stored.expires_at == NOW + timedelta(seconds=3600)

    async def test_refreshed_token_is_reused_afterwards(self, session_factory, clock):
        await seed_provider(session_factory, expires_at=NOW - timedelta(hours=1))
        renewer = FakeRenewer()
        broker, _ = make_broker(session_factory, clock, renewer)

        await broker.token_for_provider("ob-monzo")
        clock.advance(minutes=30)
        token = await broker.token_for_provider("ob-monzo")

        assert token == "renewed-access"
        assert len(renewer.calls) == 1


@pytest.mark.asyncio
class TestRefreshFailure:
    async def test_auth_error_propagates_and_store_is_untouched(self, session_factory, clock):
        await seed_provider(session_factory, expires_at=NOW - timedelta(minutes=5))
        renewer = FakeRenewer(error=AuthError("invalid_grant", "refresh token revoked"))
        broker, store = make_broker(session_factory, clock, renewer)

        with pytest.raises(AuthError) as exc_info:
            await broker.token_for_provider("ob-monzo")

        assert exc_info.value.code == "invalid_grant"
        stored = await store.for_provider("ob-monzo")
        assert stored.access_token == "stored-access"
        assert stored.expires_at == NOW - timedelta(minutes=5)
        assert not broker.refresh_in_flight("ob-monzo")

    async def test_failed_refresh_is_not_retried(self, session_factory, clock):
        await seed_provider(session_factory, expires_at=NOW - timedelta(minutes=5))
        renewer = FakeRenewer(error=NetworkError("connection reset"))
        broker, _ = make_broker(session_factory, clock, renewer)

        with pytest.raises(NetworkError):
            await broker.token_for_provider("ob-monzo")

        assert len(renewer.calls) == 1


@pytest.mark.asyncio
class TestSubjects:
    async def test_account_resolves_to_owning_provider(self, session_factory, clock):
        await seed_provider(session_factory, expires_at=NOW + timedelta(hours=1))
        await seed_account(session_factory, "acc-1")
        broker, _ = make_broker(session_factory, clock, FakeRenewer())

        assert await broker.token_for_account("acc-1") == "stored-access"

    async def test_expired_account_token_refreshes_provider(self, session_factory, clock):
        await seed_provider(session_factory, expires_at=NOW - timedelta(seconds=1))
        await seed_account(session_factory, "acc-1")
        renewer = FakeRenewer()
        broker, store = make_broker(session_factory, clock, renewer)

        assert await broker.get_token(SubjectKind.ACCOUNT, "acc-1") == "renewed-access"
        assert (await store.for_provider("ob-monzo")).access_token == "renewed-access"

    async def test_unknown_provider(self, session_factory, clock):
        broker, _ = make_broker(session_factory, clock, FakeRenewer())

        with pytest.raises(CredentialsNotFoundError):
            await broker.token_for_provider("ob-unknown")

    async def test_provider_never_connected(self, session_factory, clock):
        await seed_provider(session_factory, "ob-barclays", connected=False)
        broker, _ = make_broker(session_factory, clock, FakeRenewer())

        with pytest.raises(CredentialsNotFoundError) as exc_info:
            await broker.token_for_provider("ob-barclays")

        assert exc_info.value.subject_id == "ob-barclays"

    async def test_unknown_account(self, session_factory, clock):
        broker, _ = make_broker(session_factory, clock, FakeRenewer())

        with pytest.raises(CredentialsNotFoundError) as exc_info:
            await broker.token_for_account("acc-missing")

        assert exc_info.value.subject_kind == "account"


@pytest.mark.asyncio
class TestSingleFlight:
    async def test_concurrent_callers_share_one_refresh(self, session_factory, clock):
        await seed_provider(session_factory, expires_at=NOW - timedelta(minutes=1))
        await seed_account(session_factory, "acc-1")
        await seed_account(session_factory, "acc-2")
        renewer = FakeRenewer()
        renewer.hold()
        broker, _ = make_broker(session_factory, clock, renewer)

        tasks = [
            asyncio.create_task(broker.token_for_provider("ob-monzo")),
            asyncio.create_task(broker.token_for_account("acc-1")),
            asyncio.create_task(broker.token_for_account("acc-2")),
            asyncio.create_task(broker.token_for_provider("ob-monzo")),
        ]
        await asyncio.wait_for(renewer.started.wait(), timeout=5)
        assert broker.refresh_in_flight("ob-monzo")

        assert renewer.release is not None
        renewer.release.set()
        tokens = await asyncio.gather(*tasks)

        assert tokens == ["renewed-access"] * 4
        assert len(renewer.calls) == 1
        assert not broker.refresh_in_flight("ob-monzo")

    async def test_failure_reaches_every_waiter(self, session_factory, clock):
        await seed_provider(session_factory, expires_at=NOW - timedelta(minutes=1))
        renewer = FakeRenewer(error=AuthError("invalid_grant"))
        renewer.hold()
        broker, _ = make_broker(session_factory, clock, renewer)

        first = asyncio.create_task(broker.token_for_provider("ob-monzo"))
        await asyncio.wait_for(renewer.started.wait(), timeout=5)
        second = asyncio.create_task(broker.token_for_provider("ob-monzo"))
        # Let the second caller read its credentials and join the refresh
        for _ in range(50):
            await asyncio.sleep(0.01)

        assert renewer.release is not None
        renewer.release.set()
        outcomes = await asyncio.gather(first, second, return_exceptions=True)

        assert all(isinstance(o, AuthError) for o in outcomes)
        assert len(renewer.calls) == 1

    async def test_cancelled_waiter_does_not_cancel_refresh(self, session_factory, clock):
        await seed_provider(session_factory, expires_at=NOW - timedelta(minutes=1))
        renewer = FakeRenewer()
        renewer.hold()
        broker, store = make_broker(session_factory, clock, renewer)

        first = asyncio.create_task(broker.token_for_provider("ob-monzo"))
        await asyncio.wait_for(renewer.started.wait(), timeout=5)
        second = asyncio.create_task(broker.token_for_provider("ob-monzo"))
        for _ in range(50):
            await asyncio.sleep(0.01)

        first.cancel()
        assert renewer.release is not None
        renewer.release.set()

        assert await second == "renewed-access"
        with pytest.raises(asyncio.CancelledError):
            await first
        assert (await store.for_provider("ob-monzo")).access_token == "renewed-access"
        assert len(renewer.calls) == 1

    async def test_finished_refresh_is_never_joined(self, session_factory, clock):
        await seed_provider(session_factory, expires_at=NOW - timedelta(minutes=1))
        loop = asyncio.get_running_loop()
        in_flight_after: List[bool] = []

        class ObservingRenewer(FakeRenewer):
            async def renew_token(self, refresh_token: str) -> TokenResponse:
                try:
                    return await super().renew_token(refresh_token)
                finally:
                    # Runs ahead of any callback attached to the finishing task
                    loop.call_soon(
                        lambda: in_flight_after.append(broker.refresh_in_flight("ob-monzo"))
                    )

        renewer = ObservingRenewer(error=AuthError("invalid_grant"))
        broker, _ = make_broker(session_factory, clock, renewer)

        with pytest.raises(AuthError):
            await broker.token_for_provider("ob-monzo")
        assert in_flight_after == [False]

        renewer.error = None
        assert await broker.token_for_provider("ob-monzo") == "renewed-access"
        assert len(renewer.calls) == 2

    async def test_different_providers_refresh_independently(self, session_factory, clock):
        await seed_provider(session_factory, "ob-monzo", expires_at=NOW - timedelta(minutes=1))
        await seed_provider(
            session_factory,
            "ob-starling",
            refresh_token="starling-refresh",
            expires_at=NOW - timedelta(minutes=1),
        )
        renewer = FakeRenewer()
        broker, _ = make_broker(session_factory, clock, renewer)

        await asyncio.gather(
            broker.token_for_provider("ob-monzo"),
            broker.token_for_provider("ob-starling"),
        )

        assert sorted(renewer.calls) == ["starling-refresh", "stored-refresh"]
