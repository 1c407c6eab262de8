"""
tests/test_app.py - Engine facade: profile, admin operations, read copies and the CLI.
"""

import pytest

from gameport import cli
from gameport.app import GamePortApp
from gameport.config import GamePortConfig, StorageConfig
from gameport.errors import (
    DuplicateUsername,
    NotFoundError,
    NotPermitted,
    PolicyViolation,
    ValidationError,
)
from gameport.models import SYSTEM_CATEGORY, KycStatus, NotificationType, Override
from gameport.storage import BACKUP_KEY, SESSION_KEY, SYSTEM_STATUS_KEY, USERS_KEY, DocumentStore

from conftest import PASSWORD


# ======================================================================
# Profile, KYC and notifications
# ======================================================================


class TestProfile:
    def test_update_profile(self, app, make_player):
        make_player("Ram")
        user = app.update_profile("Ramesh", "https://img.example/me.png")
        assert user.name == "Ramesh"
        assert user.avatar == "https://img.example/me.png"
        assert app.login("ramesh", PASSWORD).name == "Ramesh"

    def test_keeps_avatar_when_omitted(self, app, make_player):
        make_player("Ram")
        before = app.current_user.avatar
        assert app.update_profile("Ramesh").avatar == before

    def test_name_taken(self, app, make_player):
        make_player("Sita")
        make_player("Ram")
        with pytest.raises(DuplicateUsername):
            app.update_profile("sita")

    def test_own_name_recased(self, app, make_player):
        make_player("Ram")
        assert app.update_profile("RAM").name == "RAM"

    def test_short_name(self, app, make_player):
        make_player("Ram")
        with pytest.raises(ValidationError):
            app.update_profile("R")


class TestKyc:
    def test_submit(self, app, make_player, clock):
        make_player("Ram")
        user = app.submit_kyc("Ram Thapa", "12-34-567", "front.png", "back.png")
        assert user.kyc_status is KycStatus.PENDING
        assert user.kyc_data.id_number == "12-34-567"
        assert user.kyc_data.submitted_at == clock.now

    def test_all_fields_required(self, app, make_player):
        make_player("Ram")
        with pytest.raises(ValidationError):
            app.submit_kyc("Ram Thapa", "", "front.png", "back.png")
        assert app.current_user.kyc_status is KycStatus.NONE

    def test_already_verified(self, app, make_player, as_admin, login_as):
        uid = make_player("Ram")
        app.submit_kyc("Ram Thapa", "12-34-567", "front.png", "back.png")
        as_admin()
        app.review_kyc(uid, approve=True)
        login_as(uid)
        with pytest.raises(PolicyViolation, match="KYC already verified."):
            app.submit_kyc("Ram Thapa", "12-34-567", "front.png", "back.png")


class TestKycReview:
    @pytest.fixture
    def pending(self, app, make_player, as_admin):
        uid = make_player("Ram")
        app.submit_kyc("Ram Thapa", "12-34-567", "front.png", "back.png")
        as_admin()
        return uid

    def test_approve(self, app, pending, documents):
        user = app.review_kyc(pending, approve=True)
        assert user.kyc_status is KycStatus.VERIFIED
        assert user.notifications[0].message == "KYC Verified! You can now join paid matches."
        assert user.notifications[0].type is NotificationType.SUCCESS
        assert documents.load(USERS_KEY)[0]["kyc_status"] == "verified"

    def test_reject_allows_resubmission(self, app, pending, login_as):
        user = app.review_kyc(pending, approve=False)
        assert user.kyc_status is KycStatus.REJECTED
        assert user.notifications[0].type is NotificationType.ERROR

        login_as(pending)
        resubmitted = app.submit_kyc("Ram Thapa", "12-34-568", "front2.png", "back2.png")
        assert resubmitted.kyc_status is KycStatus.PENDING

    def test_only_pending_can_be_reviewed(self, app, pending):
        app.review_kyc(pending, approve=True)
        with pytest.raises(PolicyViolation, match="KYC is verified, nothing to review."):
            app.review_kyc(pending, approve=False)
        assert app.store.user(pending).kyc_status is KycStatus.VERIFIED

    def test_nothing_submitted(self, app, make_player, as_admin):
        uid = make_player("Sita")
        as_admin()
        with pytest.raises(PolicyViolation):
            app.review_kyc(uid, approve=True)
        assert app.store.user(uid).notifications[0].id.startswith("welcome_")

    def test_unknown_user(self, app, as_admin):
        as_admin()
        with pytest.raises(NotFoundError):
            app.review_kyc("user_missing", approve=True)

    def test_player_cannot_review(self, app, make_player):
        uid = make_player("Ram")
        app.submit_kyc("Ram Thapa", "12-34-567", "front.png", "back.png")
        with pytest.raises(NotPermitted):
            app.review_kyc(uid, approve=True)


class TestNotifications:
    def test_mark_one_read(self, app, make_player):
        make_player("Ram")
        note_id = app.current_user.notifications[0].id
        user = app.mark_notification_read(note_id)
        assert user.notifications[0].read is True

    def test_mark_all_and_clear(self, app, make_player, as_admin, login_as):
        uid = make_player("Ram")
        as_admin()
        app.broadcast_notification("Season 2 starts Friday")
        login_as(uid)

        user = app.mark_all_notifications_read()
        assert len(user.notifications) == 2
        assert all(n.read for n in user.notifications)

        assert app.clear_notifications().notifications == []


# ======================================================================
# Read surface
# ======================================================================


class TestReadCopies:
    def test_current_user_is_a_copy(self, app, make_player):
        uid = make_player("Ram", balance=100)
        snapshot = app.current_user
        snapshot.wallet.balance = 1_000_000
        snapshot.friends.append("user_fake")
        assert app.store.user(uid).wallet.balance == 100
        assert app.store.user(uid).friends == []

    def test_lists_are_copies(self, app, make_player, make_tournament):
        make_player("Ram")
        tid = make_tournament()
        app.list_tournaments()[0].registered_team_ids.append("intruder")
        app.list_users()[0].name = "Mallory"
        assert app.store.tournament(tid).registered_team_ids == []
        assert app.store.users[app.current_user.id].name == "Ram"

    def test_operation_results_are_copies(self, app, make_player):
        uid = make_player("Ram", balance=100)
        team = app.create_team("Rhinos")
        team.members.clear()
        assert app.store.team(team.id).member_ids() == [uid]


# ======================================================================
# Admin operations
# ======================================================================


class TestBroadcast:
    def test_reaches_every_player(self, app, make_player, as_admin):
        ids = [make_player(name) for name in ("Ram", "Sita", "Hari")]
        as_admin()
        assert app.broadcast_notification("  Maintenance tonight  ") == 3
        for uid in ids:
            note = app.store.user(uid).notifications[0]
            assert note.message == "Maintenance tonight"
            assert note.category == SYSTEM_CATEGORY
            assert note.read is False

    def test_empty_message(self, app, as_admin):
        as_admin()
        with pytest.raises(ValidationError):
            app.broadcast_notification("   ")


class TestModeration:
    def test_ban_and_unban(self, app, make_player, as_admin):
        uid = make_player("Ram")
        as_admin()
        banned = app.ban_user(uid, "Toxic chat")
        assert banned.is_banned and banned.ban_reason == "Toxic chat"
        assert banned.is_online is False

        restored = app.unban_user(uid)
        assert restored.is_banned is False
        assert restored.ban_reason is None
        app.logout()
        assert app.login("ram", PASSWORD).id == uid

    def test_delete_captain_dissolves_team(self, app, make_player, as_admin):
        captain = make_player("Captain", balance=100)
        team_id = app.create_team("Rhinos").id
        member = make_player("Member", balance=10)
        app.join_team(team_id)

        as_admin()
        app.delete_user(captain)
        assert app.store.find_user(captain) is None
        assert app.list_teams() == []
        assert app.store.user(member).team_id is None

    def test_delete_member_leaves_roster(self, app, make_player, as_admin):
        make_player("Captain", balance=100)
        team_id = app.create_team("Rhinos").id
        member = make_player("Member", balance=10)
        app.join_team(team_id)

        as_admin()
        app.delete_user(member)
        assert app.store.team(team_id).member_ids() == [app.store.team(team_id).captain.id]

    def test_delete_persists(self, app, make_player, as_admin, documents):
        uid = make_player("Ram")
        as_admin()
        app.delete_user(uid)
        assert documents.load(USERS_KEY) == []

    def test_delete_unknown(self, app, as_admin):
        as_admin()
        with pytest.raises(NotFoundError):
            app.delete_user("user_missing")

    def test_player_cannot_moderate(self, app, make_player):
        uid = make_player("Ram")
        with pytest.raises(NotPermitted):
            app.ban_user(uid, "self-ban")


class TestPresentation:
    def test_hero_slides_persist(self, app, as_admin, restart):
        as_admin()
        slides = app.set_hero_slides([
            {"image_url": "https://img.example/1.png", "title": "Dashain Cup"},
            {"id": "slide_keep", "image_url": "https://img.example/2.png"},
        ])
        assert slides[0].id.startswith("slide_")
        assert slides[1].id == "slide_keep"

        relaunched = restart()
        assert [s.title for s in relaunched.hero_slides()] == ["Dashain Cup", ""]

    def test_slide_needs_image(self, app, as_admin):
        as_admin()
        with pytest.raises(ValidationError):
            app.set_hero_slides([{"title": "No picture"}])
        assert app.hero_slides() == []

    def test_login_banners_persist(self, app, as_admin, restart):
        as_admin()
        app.set_login_banners([{"image_url": "https://img.example/banner.png"}])
        assert [b.image_url for b in restart().login_banners()] == ["https://img.example/banner.png"]

    def test_unknown_override(self, app, as_admin):
        as_admin()
        with pytest.raises(ValidationError):
            app.set_system_override("sometimes")
        assert app.system_status().override is Override.AUTO


# ======================================================================
# CLI
# ======================================================================


def _seed(db_path, names=("Ram",)) -> None:
    app = GamePortApp(GamePortConfig(storage=StorageConfig(path=str(db_path)))).start()
    for name in names:
        app.sign_up(f"{name.lower()}@example.com", PASSWORD, name)
    app.close()


def _run(tmp_path, *argv) -> int:
    args = ["--config", str(tmp_path / "missing.toml"), "--db", str(tmp_path / "gameport.db"), *argv]
    with pytest.raises(SystemExit) as exc:
        cli.main(args)
    return exc.value.code


class TestCli:
    def test_status(self, tmp_path, capsys):
        assert _run(tmp_path, "status") == 0
        assert "Service:" in capsys.readouterr().out

    def test_users_empty(self, tmp_path, capsys):
        assert _run(tmp_path, "users") == 0
        assert "No users." in capsys.readouterr().out

    def test_users_listed(self, tmp_path, capsys):
        _seed(tmp_path / "gameport.db", ("Ram", "Sita"))
        assert _run(tmp_path, "users") == 0
        out = capsys.readouterr().out
        assert "Ram" in out and "Sita" in out
        assert "2 users" in out

    def test_backup(self, tmp_path):
        assert _run(tmp_path, "backup") == 1
        _seed(tmp_path / "gameport.db")
        assert _run(tmp_path, "backup") == 0

        docs = DocumentStore(str(tmp_path / "gameport.db"))
        try:
            assert len(docs.load(BACKUP_KEY)) == 1
        finally:
            docs.close()

    def test_recover(self, tmp_path):
        db = tmp_path / "gameport.db"
        _seed(db, ("Ram", "Sita"))
        assert _run(tmp_path, "backup") == 0
        # Refuses to clobber a populated collection
        assert _run(tmp_path, "recover") == 1

        docs = DocumentStore(str(db))
        docs.save(USERS_KEY, [])
        docs.close()
        assert _run(tmp_path, "recover") == 0

        docs = DocumentStore(str(db))
        try:
            assert len(docs.load(USERS_KEY)) == 2
        finally:
            docs.close()

    def test_recover_force(self, tmp_path):
        db = tmp_path / "gameport.db"
        _seed(db, ("Ram",))
        assert _run(tmp_path, "backup") == 0
        _seed(db, ("Sita",))
        assert _run(tmp_path, "recover", "--force") == 0

        docs = DocumentStore(str(db))
        try:
            assert [u["name"] for u in docs.load(USERS_KEY)] == ["Ram"]
        finally:
            docs.close()

    def test_operator_commands_keep_player_session(self, tmp_path):
        db = tmp_path / "gameport.db"
        _seed(db, ("Ram",))
        assert _run(tmp_path, "status") == 0
        assert _run(tmp_path, "override", "online") == 0

        docs = DocumentStore(str(db))
        try:
            assert docs.load(SESSION_KEY)["name"] == "Ram"
            assert [u["is_online"] for u in docs.load(USERS_KEY)] == [True]
        finally:
            docs.close()

        app = GamePortApp(GamePortConfig(storage=StorageConfig(path=str(db)))).start()
        try:
            assert app.current_user.name == "Ram"
        finally:
            app.close()

    def test_recover_without_backup(self, tmp_path):
        assert _run(tmp_path, "recover") == 1

    def test_override(self, tmp_path):
        assert _run(tmp_path, "override", "offline", "--message", "Upgrading servers") == 0
        docs = DocumentStore(str(tmp_path / "gameport.db"))
        try:
            assert docs.load(SYSTEM_STATUS_KEY) == {
                "override": "offline",
                "message": "Upgrading servers",
            }
        finally:
            docs.close()
