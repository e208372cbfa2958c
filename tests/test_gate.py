"""
Tests for the query gate that applies the default soft delete filter.
"""

import pytest
from sqlalchemy import event, select
from sqlalchemy.orm import Session, selectinload, sessionmaker

from paranoid_toolkit.config import ParanoidConfig, set_config
from paranoid_toolkit.soft_delete import (
    PRELOAD_OPTION,
    DestroyController,
    ExclusiveScope,
    ScopedQueryGate,
    ScopeMode,
    default_registry,
    deleted_only_scope,
    exclusive_scope,
    install_query_gate,
)
from sample_models import (
    Android,
    Base,
    Component,
    Person,
    Pirate,
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
    """R2D2, destroyed, with its Dome destroyed and its Arm active."""
    luke = Person(
        name="Luke Skywalker",
        androids=[
            Android(
                name="R2D2",
                components=[Component(name="Dome"), Component(name="Arm")],
            ),
            Android(name="C3P0"),
        ],
    )
    db_session.add(luke)
    db_session.commit()

    r2d2 = Android.first(db_session, Android.name == "R2D2")
    Component.first(db_session, Component.name == "Dome").destroy()
    config = ParanoidConfig(cascade_destroy_enabled=False)
    DestroyController(db_session, config=config).destroy(r2d2)
    db_session.commit()
    return r2d2


def names(records):
    return sorted(record.name for record in records)


class TestDefaultFilter:
    """Test the filter applied outside of any scope."""

    def test_plain_select(self, db_session, r2d2):
        androids = db_session.scalars(select(Android)).all()
        assert names(androids) == ["C3P0"]

    def test_session_get_skips_destroyed_rows(self, db_session, r2d2):
        """Session.get queries through the gate once the identity map is empty."""
        r2d2_id = r2d2.id
        db_session.expunge_all()

        assert db_session.get(Android, r2d2_id) is None

    def test_joined_entity_filtered(self, db_session, r2d2):
        """Criteria also apply to joined entities."""
        stmt = (
            select(Person)
            .join(Person.androids)
            .where(Android.name == "R2D2")
        )
        assert db_session.scalars(stmt).all() == []

    def test_unregistered_types_untouched(self, db_session, r2d2):
        assert names(db_session.scalars(select(Person)).all()) == ["Luke Skywalker"]

    def test_attribute_refresh_of_destroyed_record(self, db_session, r2d2):
        """Refreshing expired attributes of a destroyed record still works."""
        db_session.expire(r2d2)
        assert r2d2.name == "R2D2"

    def test_include_deleted_option(self, db_session, r2d2):
        stmt = select(Android).execution_options(include_deleted=True)
        assert names(db_session.scalars(stmt).all()) == ["C3P0", "R2D2"]

    def test_include_deleted_option_name_configurable(self, db_session, r2d2):
        set_config(ParanoidConfig(include_deleted_option="with_trashed"))

        stmt = select(Android).execution_options(with_trashed=True)
        assert len(db_session.scalars(stmt).all()) == 2

        stmt = select(Android).execution_options(include_deleted=True)
        assert len(db_session.scalars(stmt).all()) == 1

    def test_boolean_policy(self, db_session):
        db_session.add_all([Pirate(name="Anne", alive=False), Pirate(name="Mary")])
        db_session.commit()

        assert names(db_session.scalars(select(Pirate)).all()) == ["Mary"]


class TestScopedReads:
    """Test reads inside exclusive scopes."""

    def test_unfiltered_scope(self, db_session, r2d2):
        with ExclusiveScope(Android):
            assert len(db_session.scalars(select(Android)).all()) == 2

    def test_deleted_only_scope(self, db_session, r2d2):
        with deleted_only_scope(Android):
            assert names(db_session.scalars(select(Android)).all()) == ["R2D2"]

    def test_scope_is_per_type(self, db_session, r2d2):
        """A typed scope leaves other types filtered."""
        with ExclusiveScope(Android):
            assert names(db_session.scalars(select(Component)).all()) == ["Arm"]

    def test_untyped_scope_covers_every_type(self, db_session, r2d2):
        with exclusive_scope():
            assert len(db_session.scalars(select(Android)).all()) == 2
            assert len(db_session.scalars(select(Component)).all()) == 2

    def test_filter_back_after_scope(self, db_session, r2d2):
        with ExclusiveScope(Android):
            pass
        assert len(db_session.scalars(select(Android)).all()) == 1

    def test_scope_mode_by_value(self, db_session, r2d2):
        with ExclusiveScope(Component, mode=ScopeMode.DELETED_ONLY):
            assert names(db_session.scalars(select(Component)).all()) == ["Dome"]


class TestRelationshipLoads:
    """Test that relationship loads always apply the default filter."""

    def test_lazy_load_inside_scope(self, db_session, r2d2):
        with exclusive_scope():
            assert names(r2d2.components) == ["Arm"]

    def test_selectinload_inside_scope(self, db_session, r2d2):
        db_session.expunge_all()
        stmt = select(Android).options(selectinload(Android.components))

        with exclusive_scope():
            androids = {a.name: a for a in db_session.scalars(stmt).all()}

        assert set(androids) == {"R2D2", "C3P0"}
        assert names(androids["R2D2"].components) == ["Arm"]

    def test_preload_option(self, db_session, r2d2):
        """The preload option marks hand-written pre-loading statements."""
        stmt = select(Component).execution_options(**{PRELOAD_OPTION: True})

        with exclusive_scope():
            assert names(db_session.scalars(stmt).all()) == ["Arm"]


class TestScopedQueryGate:
    """Test the gate object itself."""

    def test_criterion_outside_scope(self):
        gate = ScopedQueryGate()
        registration = default_registry.require(Android)

        criterion = gate.criterion_for(registration)
        assert str(criterion) == "androids.deleted_at IS NULL"

    def test_criterion_inside_scopes(self):
        gate = ScopedQueryGate()
        registration = default_registry.require(Android)

        with ExclusiveScope(Android):
            assert gate.criterion_for(registration) is None
            assert gate.criterion_for(registration, preloading=True) is not None
        with deleted_only_scope(Android):
            criterion = gate.criterion_for(registration)
            assert str(criterion) == "androids.deleted_at IS NOT NULL"

    def test_loader_options_per_registered_type(self):
        gate = ScopedQueryGate()
        assert len(gate.loader_options()) == len(default_registry)

        with ExclusiveScope(Android):
            assert len(gate.loader_options()) == len(default_registry) - 1

    def test_install_is_idempotent(self):
        first = install_query_gate()
        second = install_query_gate()

        assert first is second
        assert event.contains(Session, "do_orm_execute", first)
