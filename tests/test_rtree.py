"""Tests for the spatial index SQL generator and the trigger case table."""

import itertools

import pytest
from shapely.geometry import LineString, Point

from gpkg_spatial.codec import geometry_to_blob
from gpkg_spatial.rtree import (
    GeometryState,
    IndexAction,
    IndexActionKind,
    RowEvent,
    RowTransition,
    SpatialIndexGenerator,
    TriggerCase,
    fired_cases,
    plan_index_actions,
    quote_identifier,
)

OLD_ID, NEW_ID = 10, 20


@pytest.fixture
def generator():
    return SpatialIndexGenerator("roads", "geom", "fid")


# ============================================================================
# SQL text
# ============================================================================

def test_quote_identifier():
    assert quote_identifier("roads") == '"roads"'
    assert quote_identifier('we"ird') == '"we""ird"'


def test_create_sql(generator):
    assert generator.index_table == "rtree_roads_geom"
    assert generator.create_sql() == (
        'CREATE VIRTUAL TABLE "rtree_roads_geom" USING rtree(id, minx, maxx, miny, maxy)'
    )


def test_load_sql(generator):
    sql = generator.load_sql()
    assert sql.startswith('INSERT OR REPLACE INTO "rtree_roads_geom"')
    assert 'SELECT "fid", ST_MinX("geom"), ST_MaxX("geom"), ST_MinY("geom"), ST_MaxY("geom")' in sql
    assert 'WHERE "geom" NOT NULL AND NOT ST_IsEmpty("geom")' in sql


def test_drop_sql(generator):
    assert generator.drop_sql() == 'DROP TABLE IF EXISTS "rtree_roads_geom"'


def test_trigger_names(generator):
    assert generator.trigger_names() == (
        "rtree_roads_geom_insert",
        "rtree_roads_geom_update2",
        "rtree_roads_geom_update4",
        "rtree_roads_geom_update5",
        "rtree_roads_geom_update6",
        "rtree_roads_geom_update7",
        "rtree_roads_geom_delete",
    )


def test_exactly_seven_triggers(generator):
    statements = generator.triggers_sql()
    assert len(statements) == 7
    assert all(s.startswith("CREATE TRIGGER ") for s in statements)
    assert len(generator.drop_triggers_sql()) == 7


@pytest.mark.parametrize("case,firing,fragments", [
    (TriggerCase.INSERT, 'AFTER INSERT ON "roads"',
     ['INSERT OR REPLACE INTO "rtree_roads_geom" VALUES', 'NOT ST_IsEmpty(NEW."geom")']),
    (TriggerCase.UPDATE2, 'AFTER UPDATE OF "geom" ON "roads"',
     ['OLD."fid" = NEW."fid"', 'NEW."geom" ISNULL OR ST_IsEmpty(NEW."geom")',
      'DELETE FROM "rtree_roads_geom" WHERE id = OLD."fid";']),
    (TriggerCase.UPDATE4, 'AFTER UPDATE ON "roads"',
     ['OLD."fid" != NEW."fid"', 'WHERE id IN (OLD."fid", NEW."fid")']),
    (TriggerCase.UPDATE5, 'AFTER UPDATE ON "roads"',
     ['OLD."fid" != NEW."fid"', 'WHERE id = OLD."fid";', 'INSERT OR REPLACE INTO']),
    (TriggerCase.UPDATE6, 'AFTER UPDATE OF "geom" ON "roads"',
     ['OLD."geom" NOTNULL AND NOT ST_IsEmpty(OLD."geom")', 'UPDATE "rtree_roads_geom" SET',
      'minx = ST_MinX(NEW."geom")', 'WHERE id = NEW."fid";']),
    (TriggerCase.UPDATE7, 'AFTER UPDATE OF "geom" ON "roads"',
     ['OLD."geom" ISNULL OR ST_IsEmpty(OLD."geom")', 'INSERT INTO "rtree_roads_geom" VALUES']),
    (TriggerCase.DELETE, 'AFTER DELETE ON "roads"',
     ['OLD."geom" NOTNULL', 'DELETE FROM "rtree_roads_geom" WHERE id = OLD."fid";']),
])
def test_trigger_sql(generator, case, firing, fragments):
    sql = generator.trigger_sql(case)
    assert sql.startswith(f'CREATE TRIGGER "rtree_roads_geom_{case.suffix}" {firing}\n')
    assert sql.rstrip().endswith("END")
    for fragment in fragments:
        assert fragment in sql, f"{case.name}: missing {fragment!r}"


def test_update7_uses_plain_insert(generator):
    assert "INSERT OR REPLACE" not in generator.trigger_sql(TriggerCase.UPDATE7)


def test_install_and_uninstall(conn, requires_rtree, generator):
    conn.execute('CREATE TABLE "roads" ("fid" INTEGER PRIMARY KEY, "geom" BLOB)')
    conn.execute('INSERT INTO "roads" ("geom") VALUES (?)', (geometry_to_blob(Point(1, 2), 4326),))
    conn.execute('INSERT INTO "roads" ("geom") VALUES (NULL)')
    conn.execute('INSERT INTO "roads" ("geom") VALUES (?)', (geometry_to_blob(LineString(), 4326),))

    generator.install(conn)

    rows = conn.execute('SELECT id, minx, maxx, miny, maxy FROM "rtree_roads_geom"').fetchall()
    assert rows == [(1, 1.0, 1.0, 2.0, 2.0)]
    triggers = {r[0] for r in conn.execute("SELECT name FROM sqlite_master WHERE type = 'trigger'")}
    assert triggers == set(generator.trigger_names())

    generator.uninstall(conn)
    remaining = conn.execute(
        "SELECT name FROM sqlite_master WHERE name LIKE 'rtree_roads_geom%'"
    ).fetchall()
    assert remaining == []


def test_bulk_load_is_idempotent(conn, requires_rtree, generator):
    conn.execute('CREATE TABLE "roads" ("fid" INTEGER PRIMARY KEY, "geom" BLOB)')
    for x in range(5):
        conn.execute('INSERT INTO "roads" ("geom") VALUES (?)', (geometry_to_blob(Point(x, -x), 4326),))
    conn.execute(generator.create_sql())

    conn.execute(generator.load_sql())
    once = conn.execute('SELECT * FROM "rtree_roads_geom" ORDER BY id').fetchall()
    conn.execute(generator.load_sql())
    twice = conn.execute('SELECT * FROM "rtree_roads_geom" ORDER BY id').fetchall()

    assert len(once) == 5
    assert once == twice


# ============================================================================
# Case table
# ============================================================================

STATES = list(GeometryState)


def all_transitions():
    """Every transition reachable by INSERT/UPDATE/DELETE, with geometry labels."""
    for new in STATES:
        yield RowTransition(RowEvent.INSERT, new_state=new)
    for old in STATES:
        yield RowTransition(RowEvent.DELETE, old_state=old)
    for old, id_changed in itertools.product(STATES, (False, True)):
        # Geometry column not in the SET list: value unchanged
        yield RowTransition(RowEvent.UPDATE, old, old, id_changed=id_changed)
        for new in STATES:
            yield RowTransition(RowEvent.UPDATE, old, new, id_changed=id_changed, geometry_assigned=True)


def simulate(transition):
    """Apply planned actions to a dict index; return (actual, expected)."""
    old_id = OLD_ID
    new_id = NEW_ID if transition.id_changed else OLD_ID
    new_label = "new" if transition.geometry_assigned or transition.event is RowEvent.INSERT else "old"

    index = {}
    if transition.event is not RowEvent.INSERT and transition.old_state.qualifies:
        index[old_id] = "old"

    for action in plan_index_actions(transition, old_id, new_id):
        if action.kind is IndexActionKind.DELETE:
            index.pop(action.row_id, None)
        elif action.kind is IndexActionKind.INSERT:
            assert action.row_id not in index, f"plain insert over existing row: {transition}"
            index[action.row_id] = new_label
        elif action.kind is IndexActionKind.UPSERT:
            index[action.row_id] = new_label
        elif action.row_id in index:
            index[action.row_id] = new_label

    expected = {}
    if transition.event is not RowEvent.DELETE and transition.new_state.qualifies:
        expected[new_id] = new_label
    return index, expected


@pytest.mark.parametrize("transition", list(all_transitions()), ids=repr)
def test_case_table_preserves_index_invariant(transition):
    actual, expected = simulate(transition)
    assert actual == expected


@pytest.mark.parametrize("transition", list(all_transitions()), ids=repr)
def test_at_most_one_trigger_fires(transition):
    assert len(fired_cases(transition)) <= 1


def test_every_case_is_reachable():
    fired = {case for t in all_transitions() for case in fired_cases(t)}
    assert fired == set(TriggerCase)


def test_same_id_geometry_change_updates_in_place():
    transition = RowTransition(
        RowEvent.UPDATE, GeometryState.PRESENT, GeometryState.PRESENT, geometry_assigned=True
    )
    assert fired_cases(transition) == [TriggerCase.UPDATE6]
    assert plan_index_actions(transition, 1, 1) == [IndexAction(IndexActionKind.UPDATE, 1)]


def test_id_change_swaps_key():
    transition = RowTransition(RowEvent.UPDATE, GeometryState.PRESENT, GeometryState.PRESENT, id_changed=True)
    assert plan_index_actions(transition, 1, 2) == [
        IndexAction(IndexActionKind.DELETE, 1),
        IndexAction(IndexActionKind.UPSERT, 2),
    ]


def test_untouched_geometry_fires_nothing():
    transition = RowTransition(RowEvent.UPDATE, GeometryState.PRESENT, GeometryState.PRESENT)
    assert fired_cases(transition) == []


def test_delete_of_empty_geometry_still_fires():
    assert fired_cases(RowTransition(RowEvent.DELETE, old_state=GeometryState.EMPTY)) == [TriggerCase.DELETE]
    assert fired_cases(RowTransition(RowEvent.DELETE, old_state=GeometryState.NULL)) == []


@pytest.mark.parametrize("kwargs", [
    {"event": RowEvent.INSERT},
    {"event": RowEvent.DELETE},
    {"event": RowEvent.UPDATE, "new_state": GeometryState.NULL},
    {"event": RowEvent.INSERT, "new_state": GeometryState.NULL, "id_changed": True},
])
def test_incomplete_transitions_are_rejected(kwargs):
    with pytest.raises(ValueError):
        RowTransition(**kwargs)
