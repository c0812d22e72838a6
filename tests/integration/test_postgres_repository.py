"""
Integration tests for the PostgreSQL repository adapters.

Tests repository operations against a real PostgreSQL database.
Requires PostgreSQL at DATABASE_URL; skipped when it is unreachable.
"""

import uuid
from collections.abc import Generator
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta

import psycopg
import pytest
from psycopg_pool import ConnectionPool

from src.adapters.repository.postgres import (
    PostgresCredentialStore,
    PostgresSocialRepository,
    run_migrations,
)
from src.adapters.repository.postgres_messages import PostgresMessageRepository, direct_key
from src.adapters.repository.postgres_pages import PostgresPageRepository
from src.config.settings import get_settings
from src.domain.exceptions import ConflictError
from src.domain.models import (
    CodePurpose,
    Comment,
    Cursor,
    Identity,
    Message,
    OneTimeCode,
    Page,
    PageRole,
    Post,
    RefreshTokenRecord,
    utcnow,
)

pytestmark = pytest.mark.integration


@pytest.fixture(scope="module")
def pool() -> Generator[ConnectionPool, None, None]:
    """Create connection pool for integration tests."""
    settings = get_settings()
    try:
        with psycopg.connect(settings.database_url, connect_timeout=2):
            pass
    except psycopg.OperationalError:
        pytest.skip("PostgreSQL is not reachable")

    pool = ConnectionPool(conninfo=settings.database_url, min_size=1, max_size=10, open=True)
    run_migrations(pool)
    yield pool
    pool.close()


@pytest.fixture(autouse=True)
def clean_database(pool: ConnectionPool) -> Generator[None, None, None]:
    """Empty all tables before each test."""
    with pool.connection() as conn:
        conn.execute(
            "TRUNCATE messages, conversation_participants, conversations, comments, likes, "
            "page_follows, page_members, pages, posts, follows, refresh_tokens, otp_codes, users"
        )
    yield


@pytest.fixture
def store(pool: ConnectionPool) -> PostgresCredentialStore:
    return PostgresCredentialStore(pool)


@pytest.fixture
def social(pool: ConnectionPool) -> PostgresSocialRepository:
    return PostgresSocialRepository(pool)


@pytest.fixture
def pages(pool: ConnectionPool) -> PostgresPageRepository:
    return PostgresPageRepository(pool)


@pytest.fixture
def messages(pool: ConnectionPool) -> PostgresMessageRepository:
    return PostgresMessageRepository(pool)


def _identity(email: str = "user@example.edu", username: str = "user1") -> Identity:
    return Identity(
        id=uuid.uuid4(),
        email=email,
        password_hash="$2b$04$abcdefghijklmnopqrstuu",
        full_name="Test User",
        username=username,
        is_verified=True,
        created_at=utcnow(),
    )


def _code(email: str = "user@example.edu", code: str = "123456") -> OneTimeCode:
    now = utcnow()
    return OneTimeCode(
        id=uuid.uuid4(),
        email=email,
        code=code,
        purpose=CodePurpose.VERIFICATION,
        expires_at=now + timedelta(minutes=10),
        created_at=now,
    )


def _insert(store: PostgresCredentialStore, identity: Identity) -> Identity:
    with store.transaction() as session:
        session.insert_identity(identity)
    return identity


class TestIdentities:
    def test_insert_and_lookup(self, store: PostgresCredentialStore) -> None:
        identity = _insert(store, _identity())

        with store.transaction() as session:
            assert session.get_identity_by_id(identity.id).email == "user@example.edu"
            assert session.get_identity_by_email("user@example.edu").id == identity.id
            assert session.get_identity_by_username("user1").id == identity.id

    def test_duplicate_email_conflicts(self, store: PostgresCredentialStore) -> None:
        _insert(store, _identity())

        with pytest.raises(ConflictError, match="email"):
            _insert(store, _identity(username="other"))

    def test_duplicate_username_conflicts(self, store: PostgresCredentialStore) -> None:
        _insert(store, _identity())

        with pytest.raises(ConflictError, match="username"):
            _insert(store, _identity(email="other@example.edu"))

    def test_update_identity(self, store: PostgresCredentialStore) -> None:
        identity = _insert(store, _identity())

        with store.transaction() as session:
            updated = session.update_identity(identity.id, bio="hello", last_seen_at=utcnow())

        assert updated.bio == "hello"
        assert updated.last_seen_at is not None

    def test_transaction_rolls_back_on_error(self, store: PostgresCredentialStore) -> None:
        identity = _identity()
        with pytest.raises(RuntimeError):
            with store.transaction() as session:
                session.insert_identity(identity)
                raise RuntimeError("abort")

        with store.transaction() as session:
            assert session.get_identity_by_id(identity.id) is None


class TestCodes:
    def test_consume_exactly_once(self, store: PostgresCredentialStore) -> None:
        with store.transaction() as session:
            session.insert_code(_code())

        with store.transaction() as session:
            assert session.consume_code("user@example.edu", "123456", CodePurpose.VERIFICATION, utcnow())
        with store.transaction() as session:
            assert not session.consume_code("user@example.edu", "123456", CodePurpose.VERIFICATION, utcnow())

    def test_wrong_code_not_consumed(self, store: PostgresCredentialStore) -> None:
        with store.transaction() as session:
            session.insert_code(_code())
            assert not session.consume_code("user@example.edu", "654321", CodePurpose.VERIFICATION, utcnow())
            assert session.has_pending_code("user@example.edu", CodePurpose.VERIFICATION, utcnow())

    def test_expired_code_not_consumed(self, store: PostgresCredentialStore) -> None:
        with store.transaction() as session:
            session.insert_code(_code())
            later = utcnow() + timedelta(minutes=11)
            assert not session.consume_code("user@example.edu", "123456", CodePurpose.VERIFICATION, later)

    def test_delete_then_insert_replaces_code(self, store: PostgresCredentialStore) -> None:
        with store.transaction() as session:
            session.insert_code(_code(code="111111"))
        with store.transaction() as session:
            assert session.delete_codes("user@example.edu", CodePurpose.VERIFICATION) == 1
            session.insert_code(_code(code="222222"))

        with store.transaction() as session:
            assert not session.consume_code("user@example.edu", "111111", CodePurpose.VERIFICATION, utcnow())
            assert session.consume_code("user@example.edu", "222222", CodePurpose.VERIFICATION, utcnow())

    def test_concurrent_consumption_single_winner(self, store: PostgresCredentialStore) -> None:
        with store.transaction() as session:
            session.insert_code(_code())

        def consume() -> bool:
            with store.transaction() as session:
                return session.consume_code("user@example.edu", "123456", CodePurpose.VERIFICATION, utcnow())

        with ThreadPoolExecutor(max_workers=8) as executor:
            results = list(executor.map(lambda _: consume(), range(8)))

        assert results.count(True) == 1


class TestRefreshTokens:
    def test_take_is_single_use(self, store: PostgresCredentialStore) -> None:
        identity = _insert(store, _identity())
        now = utcnow()
        record = RefreshTokenRecord(
            id=uuid.uuid4(), token_hash="a" * 64, user_id=identity.id, expires_at=now + timedelta(days=7), created_at=now
        )
        with store.transaction() as session:
            session.insert_refresh_token(record)

        def take() -> bool:
            with store.transaction() as session:
                return session.take_refresh_token("a" * 64, identity.id, utcnow())

        with ThreadPoolExecutor(max_workers=8) as executor:
            results = list(executor.map(lambda _: take(), range(8)))

        assert results.count(True) == 1

    def test_delete_refresh_tokens(self, store: PostgresCredentialStore) -> None:
        identity = _insert(store, _identity())
        now = utcnow()
        with store.transaction() as session:
            session.insert_refresh_token(
                RefreshTokenRecord(
                    id=uuid.uuid4(), token_hash="b" * 64, user_id=identity.id, expires_at=now + timedelta(days=7), created_at=now
                )
            )
            assert session.delete_refresh_tokens("b" * 64) == 1
            assert session.delete_refresh_tokens("b" * 64) == 0


class TestSocial:
    def test_follow_counts_and_lists(
        self, store: PostgresCredentialStore, social: PostgresSocialRepository
    ) -> None:
        alice = _insert(store, _identity("alice@example.edu", "alice"))
        bob = _insert(store, _identity("bob@example.edu", "bob"))

        assert social.follow(alice.id, bob.id) is True
        assert social.follow(alice.id, bob.id) is False
        assert social.is_following(alice.id, bob.id)
        assert social.following_ids(alice.id) == [bob.id]
        assert [i.username for i in social.list_followers(bob.id, 10)] == ["alice"]
        assert [i.username for i in social.list_following(alice.id, 10)] == ["bob"]
        assert social.count_stats(bob.id).followers == 1
        assert social.unfollow(alice.id, bob.id) is True
        assert social.unfollow(alice.id, bob.id) is False

    def test_posts_newest_first_with_cursor(
        self, store: PostgresCredentialStore, social: PostgresSocialRepository
    ) -> None:
        alice = _insert(store, _identity())
        base = utcnow()
        for minutes in range(3):
            social.insert_post(
                Post(
                    id=uuid.uuid4(),
                    user_id=alice.id,
                    content=f"post {minutes}",
                    media_urls=("https://img.example/1.png",),
                    created_at=base + timedelta(minutes=minutes),
                )
            )

        newest = social.list_posts([alice.id], 2, None)
        assert [p.content for p in newest] == ["post 2", "post 1"]
        assert newest[0].media_urls == ("https://img.example/1.png",)

        last = newest[-1]
        older = social.list_posts([alice.id], 2, Cursor(created_at=last.created_at, id=last.id))
        assert [p.content for p in older] == ["post 0"]

        assert social.count_stats(alice.id).posts == 3
        assert social.delete_post(older[0].id) is True
        assert social.get_post(older[0].id) is None

    def test_keyset_breaks_timestamp_ties_by_id(
        self, store: PostgresCredentialStore, social: PostgresSocialRepository
    ) -> None:
        alice = _insert(store, _identity())
        instant = utcnow()
        for content in ("a", "b", "c"):
            social.insert_post(Post(id=uuid.uuid4(), user_id=alice.id, content=content, created_at=instant))

        seen = []
        cursor = None
        while True:
            batch = social.list_posts([alice.id], 1, cursor)
            if not batch:
                break
            seen.append(batch[0].id)
            cursor = Cursor(created_at=batch[0].created_at, id=batch[0].id)

        assert len(seen) == len(set(seen)) == 3

    def test_likes_comments_and_cascade(
        self, store: PostgresCredentialStore, social: PostgresSocialRepository
    ) -> None:
        alice = _insert(store, _identity("alice@example.edu", "alice"))
        bob = _insert(store, _identity("bob@example.edu", "bob"))
        post = Post(id=uuid.uuid4(), user_id=alice.id, content="hi", created_at=utcnow())
        social.insert_post(post)

        assert social.like(bob.id, post.id) is True
        assert social.like(bob.id, post.id) is False
        top = Comment(id=uuid.uuid4(), post_id=post.id, user_id=bob.id, content="nice", created_at=utcnow())
        social.insert_comment(top)
        reply = Comment(
            id=uuid.uuid4(), post_id=post.id, user_id=alice.id, content="ty", parent_id=top.id, created_at=utcnow()
        )
        social.insert_comment(reply)

        stats = social.post_stats([post.id], bob.id)[post.id]
        assert (stats.likes, stats.comments, stats.is_liked) == (1, 2, True)
        assert [c.id for c in social.list_comments(post.id, 10)] == [top.id]
        assert social.get_comment(reply.id).parent_id == top.id
        assert social.unlike(bob.id, post.id) is True
        assert social.unlike(bob.id, post.id) is False

        social.delete_post(post.id)
        assert social.get_comment(top.id) is None


class TestPages:
    def _page(self, owner_id: uuid.UUID, slug: str = "chess-club") -> Page:
        return Page(id=uuid.uuid4(), name="Chess Club", slug=slug, category="social", created_by=owner_id)

    def test_creator_is_admin_and_slug_unique(
        self, store: PostgresCredentialStore, pages: PostgresPageRepository
    ) -> None:
        alice = _insert(store, _identity())
        page = self._page(alice.id)
        pages.insert_page(page)

        assert pages.member_role(page.id, alice.id) is PageRole.ADMIN
        assert pages.get_page_by_slug("chess-club").id == page.id
        with pytest.raises(ConflictError):
            pages.insert_page(self._page(alice.id))

    def test_update_follow_and_stats(
        self, store: PostgresCredentialStore, pages: PostgresPageRepository, social: PostgresSocialRepository
    ) -> None:
        alice = _insert(store, _identity("alice@example.edu", "alice"))
        bob = _insert(store, _identity("bob@example.edu", "bob"))
        page = self._page(alice.id)
        pages.insert_page(page)

        assert pages.update_page(page.id, description="Weekly").description == "Weekly"
        assert pages.add_member(page.id, bob.id, PageRole.MEMBER) is True
        assert pages.add_member(page.id, bob.id, PageRole.MEMBER) is False
        assert pages.follow_page(bob.id, page.id) is True
        assert pages.follow_page(bob.id, page.id) is False
        assert pages.is_following_page(bob.id, page.id)
        social.insert_post(Post(id=uuid.uuid4(), user_id=bob.id, content="hi", created_at=utcnow(), page_id=page.id))

        stats = pages.page_stats(page.id)
        assert (stats.followers, stats.members, stats.posts) == (1, 2, 1)
        assert [p.content for p in social.list_page_posts(page.id, 10, None)] == ["hi"]
        assert pages.unfollow_page(bob.id, page.id) is True

    def test_search_escapes_wildcards(self, store: PostgresCredentialStore, pages: PostgresPageRepository) -> None:
        alice = _insert(store, _identity())
        pages.insert_page(self._page(alice.id))

        assert [p.slug for p in pages.list_pages(None, "chess", 10)] == ["chess-club"]
        assert pages.list_pages(None, "%", 10) == []
        assert pages.list_pages("tech", None, 10) == []


class TestMessages:
    def test_open_direct_is_shared(
        self, store: PostgresCredentialStore, messages: PostgresMessageRepository
    ) -> None:
        alice = _insert(store, _identity("alice@example.edu", "alice"))
        bob = _insert(store, _identity("bob@example.edu", "bob"))

        first, created = messages.open_direct(alice.id, bob.id, utcnow())
        again, created_again = messages.open_direct(bob.id, alice.id, utcnow())

        assert (created, created_again) == (True, False)
        assert again.id == first.id
        assert set(messages.participant_ids(first.id)) == {alice.id, bob.id}
        assert direct_key(alice.id, bob.id) == direct_key(bob.id, alice.id)

    def test_concurrent_open_creates_one_conversation(
        self, store: PostgresCredentialStore, messages: PostgresMessageRepository
    ) -> None:
        alice = _insert(store, _identity("alice@example.edu", "alice"))
        bob = _insert(store, _identity("bob@example.edu", "bob"))

        with ThreadPoolExecutor(max_workers=6) as executor:
            results = list(executor.map(lambda _: messages.open_direct(alice.id, bob.id, utcnow()), range(6)))

        assert len({conversation.id for conversation, _ in results}) == 1
        assert [created for _, created in results].count(True) == 1

    def test_messages_unread_and_ordering(
        self, store: PostgresCredentialStore, messages: PostgresMessageRepository
    ) -> None:
        alice = _insert(store, _identity("alice@example.edu", "alice"))
        bob = _insert(store, _identity("bob@example.edu", "bob"))
        conversation, _ = messages.open_direct(alice.id, bob.id, utcnow())
        base = utcnow()
        for i in range(3):
            messages.insert_message(
                Message(
                    id=uuid.uuid4(),
                    conversation_id=conversation.id,
                    sender_id=alice.id,
                    content=f"m{i}",
                    created_at=base + timedelta(seconds=i),
                )
            )

        assert messages.count_unread(bob.id) == 3
        assert messages.count_unread(alice.id) == 0
        assert messages.last_message(conversation.id).content == "m2"
        assert messages.get_conversation(conversation.id).updated_at == base + timedelta(seconds=2)

        messages.mark_read(conversation.id, bob.id, base + timedelta(seconds=1))
        assert messages.count_unread(bob.id) == 1
        messages.mark_read(conversation.id, bob.id, base)
        assert messages.last_read_at(conversation.id, bob.id) == base + timedelta(seconds=1)

        newest = messages.list_messages(conversation.id, 2, None)
        older = messages.list_messages(conversation.id, 2, Cursor(created_at=newest[-1].created_at, id=newest[-1].id))
        assert [m.content for m in newest + older] == ["m2", "m1", "m0"]
        assert [c.id for c in messages.list_conversations(bob.id)] == [conversation.id]
