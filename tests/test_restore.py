"""
Tests for restore and cascading restore.
"""

from unittest.mock import Mock

import pytest
from sqlalchemy.orm import sessionmaker

from paranoid_toolkit.config import ParanoidConfig, set_config
from paranoid_toolkit.soft_delete import (
    AFTER_RESTORE,
    BEFORE_RESTORE,
    CascadeFailure,
    NotFound,
    RestoreController,
    RestoreOptions,
)
from sample_models import (
    Android,
    Base,
    Category,
    Component,
    Dent,
    Ding,
    Memory,
    Person,
    Place,
    Sticker,
    SubComponent,
    UuidRecord,
    create_test_engine,
)


@pytest.fixture
def db_session():
    """Create an in-memory SQLite database session for testing."""
    engine = create_test_engine()
    Base.metadata.create_all(engine)

    Session = sessionmaker(bind=engine)
    session = Session()

    yield session

    session.close()
    engine.dispose()


@pytest.fixture
def r2d2(db_session):
    """R2D2 with two components, a sub component, a memory and a place."""
    luke = Person(
        name="Luke Skywalker",
        androids=[
            Android(
                name="R2D2",
                components=[
                    Component(
                        name="Dome", sub_components=[SubComponent(name="Periscope")]
                    ),
                    Component(name="Arm"),
                ],
                sticker=Sticker(name="Rebel"),
                memories=[Memory(name="Death Star plans")],
                places=[Place(name="Tatooine")],
            ),
            Android(name="C3P0"),
        ],
    )
    db_session.add(luke)
    db_session.commit()
    return Android.first(db_session, Android.name == "R2D2")


class TestRestore:
    """Test restoring a single record."""

    def test_round_trip(self, db_session, r2d2):
        """Destroy then restore brings the record back."""
        r2d2.destroy()
        result = r2d2.restore()

        assert result is r2d2
        assert r2d2.deleted_at is None
        assert r2d2.is_destroyed is False
        assert Android.count(db_session) == 2
        assert Android.variants.count_deleted_only(db_session) == 0

    def test_restore_persists(self, db_session, r2d2):
        r2d2.destroy()
        db_session.commit()
        r2d2.restore()
        db_session.commit()
        db_session.expire_all()

        assert Android.first(db_session, Android.name == "R2D2").deleted_at is None

    def test_restore_by_id(self, db_session, r2d2):
        """A soft-deleted record can be restored by primary key."""
        r2d2_id = r2d2.id
        r2d2.destroy()

        restored = Android.restore_by_id(db_session, r2d2_id)

        assert restored is r2d2
        assert Android.get(db_session, r2d2_id) is r2d2

    def test_restore_unknown_id(self, db_session, r2d2):
        with pytest.raises(NotFound) as exc:
            Android.restore_by_id(db_session, 9999)

        assert exc.value.entity_id == 9999

    def test_restore_active_record(self, db_session, r2d2):
        """Restoring an active record is a harmless rewrite of the sentinel."""
        assert r2d2.restore() is r2d2
        assert r2d2.deleted_at is None
        assert Component.count(db_session) == 2

    def test_restore_skips_update_events(self, db_session, r2d2):
        """The sentinel write bypasses before_update, which would raise."""
        r2d2.destroy()
        r2d2.restore()
        db_session.commit()

        assert Android.count(db_session) == 2

    def test_restore_leaves_unsaved_edits_alone(self, db_session, r2d2):
        """Pending edits are not flushed, so before_update never runs."""
        r2d2.destroy()
        r2d2.name = "Artoo"

        assert r2d2.restore() is r2d2

        assert r2d2.deleted_at is None
        assert r2d2 in db_session.dirty
        with db_session.no_autoflush:
            assert Android.count(db_session) == 2
            assert Component.count(db_session) == 2

    def test_restore_string_primary_key(self, db_session):
        record = UuidRecord(name="Holocron")
        db_session.add(record)
        db_session.commit()
        record.destroy()

        assert UuidRecord.count(db_session) == 0
        assert UuidRecord.restore_by_id(db_session, record.uuid) is record
        assert UuidRecord.count(db_session) == 1

    def test_restore_logged(self, db_session, r2d2, transitions_log):
        r2d2.destroy()
        r2d2.restore()

        assert f"Restored Android {r2d2.id!r}" in transitions_log.text

    def test_restore_with_options_object(self, db_session, r2d2):
        """RestoreOptions and plain dicts are both accepted."""
        r2d2.destroy()
        controller = RestoreController(db_session)

        options = RestoreOptions(include_destroyed_dependents=False)
        controller.restore_instance(r2d2, options)

        assert Android.count(db_session) == 2
        assert Component.count(db_session) == 0


class TestRestoreHooks:
    """Test hook gating and rollback on restore."""

    def test_before_restore_refusal(self, db_session, r2d2, listener):
        """A refusing before_restore hook leaves the record destroyed."""
        after = listener(Android, AFTER_RESTORE, Mock())
        listener(Android, BEFORE_RESTORE, lambda android: False)
        r2d2.destroy()

        assert r2d2.restore() is None
        assert r2d2.deleted_at is not None
        after.assert_not_called()
        assert Component.count(db_session) == 0

    def test_after_restore_failure_reverts(self, db_session, r2d2, listener):
        """A failing after_restore hook keeps the record destroyed."""
        listener(Android, AFTER_RESTORE, Mock(side_effect=ValueError("nope")))
        r2d2.destroy()
        tombstone = r2d2.deleted_at

        with pytest.raises(ValueError, match="nope"):
            r2d2.restore()

        assert r2d2.deleted_at == tombstone
        assert Android.count(db_session) == 1

    def test_hooks_see_restored_state(self, db_session, r2d2, listener):
        seen = []
        listener(Android, AFTER_RESTORE, lambda a: seen.append(a.deleted_at))
        r2d2.destroy()

        r2d2.restore()

        assert seen == [None]


@pytest.mark.cascade
class TestRestoreCascade:
    """Test which related records come back with a restore."""

    def test_dependents_restored(self, db_session, r2d2):
        """Destroyed dependents are restored recursively by default."""
        r2d2.destroy()
        r2d2.restore()

        assert Component.count(db_session) == 2
        assert SubComponent.count(db_session) == 1
        assert len(r2d2.components) == 2

    def test_dependents_excluded(self, db_session, r2d2):
        """include_destroyed_dependents=False restores the record alone."""
        r2d2.destroy()
        r2d2.restore(include_destroyed_dependents=False)

        assert Android.count(db_session) == 2
        assert Component.count(db_session) == 0
        assert r2d2.components == []

    def test_dependent_destroyed_earlier_restored(self, db_session, r2d2):
        """Every destroyed dependent comes back, whenever it was destroyed."""
        r2d2.components[0].destroy()
        r2d2.destroy()

        r2d2.restore()

        assert Component.count(db_session) == 2

    def test_include_owned_non_dependent(self, db_session, r2d2):
        """include names relationships restored regardless of cascade."""
        Memory.first(db_session).destroy()
        r2d2.destroy()

        r2d2.restore(include="memories")

        assert Memory.count(db_session) == 1
        # naming an include turns the dependent cascade off
        assert Component.count(db_session) == 0

    def test_include_with_dependents(self, db_session, r2d2):
        Memory.first(db_session).destroy()
        r2d2.destroy()

        r2d2.restore(include=["memories"], include_destroyed_dependents=True)

        assert Memory.count(db_session) == 1
        assert Component.count(db_session) == 2

    def test_include_parent(self, db_session, r2d2):
        """A belongs-to relationship is restored only when included."""
        memory = Memory.first(db_session)
        memory.destroy()
        r2d2.destroy()

        memory.restore()
        assert Android.count(db_session) == 1

        memory.destroy()
        memory.restore(include="android")
        assert Android.count(db_session) == 2
        assert memory.android is r2d2

    def test_include_many_to_many(self, db_session, r2d2):
        Place.first(db_session).destroy()
        r2d2.destroy()

        r2d2.restore(include="places")

        assert Place.count(db_session) == 1
        assert [place.name for place in r2d2.places] == ["Tatooine"]

    def test_unknown_include_ignored(self, db_session, r2d2):
        r2d2.destroy()
        assert r2d2.restore(include="nonexistent") is r2d2

    def test_unregistered_targets_skipped(self, db_session, r2d2):
        """The non-paranoid owner is never touched."""
        r2d2.destroy()
        r2d2.restore(include="owner")

        assert r2d2.owner.name == "Luke Skywalker"

    def test_boolean_dependents(self, db_session):
        dent = Dent(dings=[Ding(), Ding()])
        db_session.add(dent)
        db_session.commit()
        dent.destroy()

        dent.restore()

        assert Ding.count(db_session) == 2
        assert Ding.variants.count_deleted_only(db_session) == 0

    def test_self_referential_cycle(self, db_session):
        """Restoring through parent and children terminates."""
        root = Category(name="root", children=[Category(name="leaf")])
        db_session.add(root)
        db_session.commit()
        root.destroy()
        leaf = Category.variants.first_deleted_only(db_session, Category.name == "leaf")

        leaf.restore(include=["parent", "children"], include_destroyed_dependents=True)

        assert Category.count(db_session) == 2

    def test_cascade_disabled(self, db_session, r2d2):
        set_config(ParanoidConfig(cascade_restore_enabled=False))
        r2d2.destroy()

        r2d2.restore()

        assert Android.count(db_session) == 2
        assert Component.count(db_session) == 0


@pytest.mark.cascade
class TestCascadeFailure:
    """Test failure handling inside a cascading restore."""

    @pytest.fixture
    def failing_components(self, listener):
        return listener(Component, AFTER_RESTORE, Mock(side_effect=ValueError("jam")))

    def test_abort_stops_at_first_failure(
        self, db_session, r2d2, failing_components
    ):
        """ABORT raises on the first failing branch, chained to its cause."""
        r2d2.destroy()

        with pytest.raises(CascadeFailure) as exc:
            r2d2.restore()

        assert len(exc.value.failures) == 1
        name, _, error = exc.value.failures[0]
        assert name == "components"
        assert isinstance(error, ValueError)
        assert exc.value.__cause__ is error
        assert exc.value.entity_type is Android
        assert failing_components.call_count == 1

    def test_owner_stays_restored(self, db_session, r2d2, failing_components):
        """The cascade is not atomic; the owner keeps its restored state."""
        r2d2.destroy()

        with pytest.raises(CascadeFailure):
            r2d2.restore()

        assert r2d2.deleted_at is None
        assert Android.count(db_session) == 2
        assert Component.count(db_session) == 0
        assert SubComponent.count(db_session) == 0

    def test_continue_collects_failures(
        self, db_session, r2d2, failing_components, caplog
    ):
        """CONTINUE tries every branch, then reports them together."""
        set_config(ParanoidConfig(cascade_failure_policy="continue"))
        r2d2.destroy()

        with pytest.raises(CascadeFailure) as exc:
            r2d2.restore()

        assert [failure[0] for failure in exc.value.failures] == [
            "components",
            "components",
        ]
        assert failing_components.call_count == 2
        assert "Restoring components of Android" in caplog.text

    def test_continue_restores_healthy_branches(self, db_session, r2d2, listener):
        set_config(ParanoidConfig(cascade_failure_policy="continue"))
        dome_id = Component.first(db_session, Component.name == "Dome").id

        def jam_dome(component):
            if component.id == dome_id:
                raise ValueError("jam")

        listener(Component, AFTER_RESTORE, jam_dome)
        r2d2.destroy()

        with pytest.raises(CascadeFailure) as exc:
            r2d2.restore()

        assert len(exc.value.failures) == 1
        assert [c.id for c in Component.all(db_session)] != [dome_id]
        assert Component.count(db_session) == 1

    def test_restore_by_id_missing_after_hard_delete(self, db_session, r2d2):
        r2d2_id = r2d2.id
        r2d2.destroy()
        Android.delete_all(db_session, r2d2_id)

        with pytest.raises(NotFound):
            Android.restore_by_id(db_session, r2d2_id)
