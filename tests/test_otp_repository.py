from sqlmodel import Session, select

from directory_auth.application.ports.otp_repo import OTPError
from directory_auth.db.models import OTPRecord
from directory_auth.infrastructure.persistence.sqlalchemy.repositories.otp_repository_sql import SqlOTPRepository

PHONE = "+15551234567"


def make_repo(db, clock, codes=("111111", "222222", "333333")):
    it = iter(codes)
    return SqlOTPRepository(db, ttl_seconds=600, max_attempts=5, clock=clock, code_factory=lambda: next(it))


class SnapshotOTPRepository(SqlOTPRepository):
    """Checks against a row read before other submissions were written."""

    def __init__(self, session, snapshot, **kwargs):
        super().__init__(session, **kwargs)
        self.snapshot = snapshot

    def _latest(self, phone_number, purpose):
        return self.snapshot


def read_latest(engine):
    with Session(engine) as s:
        rec = s.exec(select(OTPRecord)).one()
        s.expunge(rec)
    return rec


def test_create_otp_sets_expiry_and_counters(db, clock):
    repo = make_repo(db, clock)
    rec = repo.create_otp(PHONE)
    assert rec.otp_code == "111111"
    assert rec.created_at == clock.now
    assert rec.expires_at == clock.now + 600
    assert rec.attempts == 0
    assert rec.verified is False


def test_verify_without_any_code(db, clock):
    result = make_repo(db, clock).verify_otp(PHONE, "111111")
    assert not result.success
    assert result.error == OTPError.NOT_FOUND


def test_mismatch_then_correct_code_verifies(db, clock):
    repo = make_repo(db, clock)
    repo.create_otp(PHONE)

    wrong = repo.verify_otp(PHONE, "999999")
    assert not wrong.success
    assert wrong.error == OTPError.MISMATCH

    right = repo.verify_otp(PHONE, "111111")
    assert right.success
    assert right.record.verified is True
    assert right.record.attempts == 1


def test_mismatches_below_the_cap_do_not_lock_out(db, clock):
    repo = make_repo(db, clock)
    repo.create_otp(PHONE)
    for _ in range(4):
        assert repo.verify_otp(PHONE, "000000").error == OTPError.MISMATCH
    assert repo.verify_otp(PHONE, "111111").success


def test_attempt_cap_blocks_even_the_correct_code(db, clock):
    repo = make_repo(db, clock)
    repo.create_otp(PHONE)
    for _ in range(5):
        repo.verify_otp(PHONE, "000000")
    result = repo.verify_otp(PHONE, "111111")
    assert not result.success
    assert result.error == OTPError.ATTEMPTS_EXCEEDED


def test_expired_code_is_rejected(db, clock):
    repo = make_repo(db, clock)
    repo.create_otp(PHONE)
    clock.advance(601)
    result = repo.verify_otp(PHONE, "111111")
    assert result.error == OTPError.EXPIRED


def test_only_latest_code_is_operative(db, clock):
    repo = make_repo(db, clock)
    repo.create_otp(PHONE)
    clock.advance(5)
    repo.create_otp(PHONE)

    stale = repo.verify_otp(PHONE, "111111")
    assert not stale.success
    assert stale.error == OTPError.MISMATCH
    assert repo.verify_otp(PHONE, "222222").success


def test_latest_code_wins_within_the_same_second(db, clock):
    repo = make_repo(db, clock)
    repo.create_otp(PHONE)
    repo.create_otp(PHONE)
    assert repo.verify_otp(PHONE, "111111").error == OTPError.MISMATCH
    assert repo.verify_otp(PHONE, "222222").success


def test_reverifying_a_verified_code_succeeds(db, clock):
    repo = make_repo(db, clock)
    repo.create_otp(PHONE)
    assert repo.verify_otp(PHONE, "111111").success
    again = repo.verify_otp(PHONE, "111111")
    assert again.success
    assert again.record.verified is True


def test_codes_are_per_phone_and_purpose(db, clock):
    repo = make_repo(db, clock)
    repo.create_otp(PHONE, purpose="registration")
    assert repo.verify_otp("+15550000000", "111111").error == OTPError.NOT_FOUND
    assert repo.verify_otp(PHONE, "111111", purpose="login").error == OTPError.NOT_FOUND


def test_find_recent_verified(db, clock):
    repo = make_repo(db, clock)
    rec = repo.create_otp(PHONE)
    assert repo.find_recent_verified(PHONE, since=rec.created_at) is None

    repo.verify_otp(PHONE, "111111")
    found = repo.find_recent_verified(PHONE, since=rec.created_at)
    assert found is not None
    assert found.created_at == rec.created_at

    assert repo.find_recent_verified(PHONE, since=rec.created_at + 1) is None


def test_delete_otp(db, clock):
    repo = make_repo(db, clock)
    rec = repo.create_otp(PHONE)
    repo.verify_otp(PHONE, "111111")
    repo.delete_otp(PHONE, rec.created_at)
    assert repo.find_recent_verified(PHONE, since=0) is None
    assert repo.verify_otp(PHONE, "111111").error == OTPError.NOT_FOUND


def test_purge_expired_removes_only_dead_records(db, clock):
    repo = make_repo(db, clock)
    repo.create_otp(PHONE)
    clock.advance(601)
    repo.create_otp("+15550000000")
    assert repo.purge_expired() == 1
    assert repo.verify_otp("+15550000000", "222222").success


def test_simultaneous_wrong_guesses_cannot_pass_the_cap(engine, db, clock):
    repo = make_repo(db, clock)
    repo.create_otp(PHONE)
    for _ in range(4):
        repo.verify_otp(PHONE, "000000")

    # Three requests all read attempts=4 before any of them wrote
    snapshot = read_latest(engine)
    assert snapshot.attempts == 4
    errors = []
    for _ in range(3):
        with Session(engine) as s:
            racer = SnapshotOTPRepository(s, snapshot, max_attempts=5, clock=clock)
            errors.append(racer.verify_otp(PHONE, "000000").error)

    assert errors == [OTPError.MISMATCH, OTPError.ATTEMPTS_EXCEEDED, OTPError.ATTEMPTS_EXCEEDED]
    assert read_latest(engine).attempts == 5


def test_correct_guess_landing_after_the_cap_does_not_verify(engine, db, clock):
    repo = make_repo(db, clock)
    repo.create_otp(PHONE)
    for _ in range(4):
        repo.verify_otp(PHONE, "000000")
    snapshot = read_latest(engine)

    with Session(engine) as s:
        SnapshotOTPRepository(s, snapshot, max_attempts=5, clock=clock).verify_otp(PHONE, "000000")
    with Session(engine) as s:
        late = SnapshotOTPRepository(s, snapshot, max_attempts=5, clock=clock).verify_otp(PHONE, "111111")

    assert not late.success
    assert late.error == OTPError.ATTEMPTS_EXCEEDED
    assert read_latest(engine).verified is False
