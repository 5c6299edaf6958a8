from directory_auth.application.ports.session_repo import Principal, SessionError
from directory_auth.infrastructure.persistence.sqlalchemy.repositories.session_repository_sql import SqlSessionRepository

DAY = 24 * 3600
ALICE = Principal(user_id="user-1", username="alice1", role="user")


def make_repo(db, clock):
    return SqlSessionRepository(db, short_seconds=DAY, long_seconds=30 * DAY, clock=clock)


def test_create_and_validate(db, clock):
    repo = make_repo(db, clock)
    issued = repo.create_session(ALICE, "10.0.0.1", "pytest")
    assert issued.expires_at == clock.now + DAY

    result = repo.validate_session(issued.session_id)
    assert result.valid
    assert result.session.username == "alice1"
    assert result.session.ip_address == "10.0.0.1"
    assert result.session.remember_me is False


def test_remember_me_outlives_a_normal_session(db, clock):
    repo = make_repo(db, clock)
    short = repo.create_session(ALICE, None, None, remember_me=False)
    long = repo.create_session(ALICE, None, None, remember_me=True)
    assert long.expires_at > short.expires_at

    clock.advance(DAY + 1)
    assert repo.validate_session(short.session_id).error == SessionError.EXPIRED
    assert repo.validate_session(long.session_id).valid


def test_unknown_session(db, clock):
    result = make_repo(db, clock).validate_session("does-not-exist")
    assert not result.valid
    assert result.error == SessionError.NOT_FOUND


def test_invalidate_is_idempotent(db, clock):
    repo = make_repo(db, clock)
    issued = repo.create_session(ALICE, None, None)
    repo.invalidate_session(issued.session_id)
    repo.invalidate_session(issued.session_id)
    repo.invalidate_session("does-not-exist")
    assert repo.validate_session(issued.session_id).error == SessionError.INVALIDATED


def test_invalidated_is_reported_before_expired(db, clock):
    repo = make_repo(db, clock)
    issued = repo.create_session(ALICE, None, None)
    repo.invalidate_session(issued.session_id)
    clock.advance(DAY + 1)
    assert repo.validate_session(issued.session_id).error == SessionError.INVALIDATED


def test_activity_does_not_extend_expiry(db, clock):
    repo = make_repo(db, clock)
    issued = repo.create_session(ALICE, None, None)
    clock.advance(DAY - 10)
    repo.update_session_activity(issued.session_id)

    session = repo.get_session(issued.session_id)
    assert session.last_activity_at == clock.now
    assert session.expires_at == issued.expires_at

    clock.advance(11)
    assert repo.validate_session(issued.session_id).error == SessionError.EXPIRED


def test_get_user_sessions_lists_active_ones(db, clock):
    repo = make_repo(db, clock)
    first = repo.create_session(ALICE, None, None)
    clock.advance(1)
    second = repo.create_session(ALICE, None, None)
    clock.advance(1)
    third = repo.create_session(ALICE, None, None)
    repo.invalidate_session(second.session_id)

    ids = [s.session_id for s in repo.get_user_sessions("user-1")]
    assert ids == [third.session_id, first.session_id]


def test_purge_expired(db, clock):
    repo = make_repo(db, clock)
    old = repo.create_session(ALICE, None, None)
    clock.advance(DAY + 1)
    fresh = repo.create_session(ALICE, None, None)
    assert repo.purge_expired() == 1
    assert repo.get_session(old.session_id) is None
    assert repo.get_session(fresh.session_id) is not None
