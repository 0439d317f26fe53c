# ============================================================================
# MODULE CONTEXT - SPATIAL INDEX GENERATOR
# ============================================================================
# STATUS: Core - GeoPackage R-tree extension (gpkg_rtree_index)
# PURPOSE: DDL, bulk load and the seven maintenance triggers for one geometry column
# EXPORTS: SpatialIndexGenerator, TriggerCase, RowTransition, GeometryState, RowEvent,
#          IndexAction, IndexActionKind, fired_cases, plan_index_actions, quote_identifier
# DEPENDENCIES: sqlite3, util_logger
# SOURCE: https://www.geopackage.org/spec140/index.html#extension_rtree
# PATTERNS: Case table drives both SQL text and the pure-Python transition model
# ============================================================================

"""
Spatial index generation.

The index for (table, geometry column) is an R*Tree virtual table named
rtree_<table>_<column> with columns (id, minx, maxx, miny, maxy). It holds
exactly one row per base-table row whose geometry is neither NULL nor Empty.

Seven triggers keep it in step with the base table. Each one is a member of
TriggerCase, which carries:
    - the SQL firing clause and WHEN condition
    - a Python predicate over RowTransition mirroring that WHEN condition
    - the index actions the trigger body performs

so the transition table can be tested without a database, and the SQL text is
generated from the same entries.

Case table (same id unless noted; "ok" = geometry non-null and non-Empty):

    trigger   event                   condition                  action
    insert    INSERT                  new ok                     upsert new id
    update2   UPDATE OF geom          new not ok                 delete old id
    update4   UPDATE (any column)     id changed, new not ok     delete old id, new id
    update5   UPDATE (any column)     id changed, new ok         delete old id, upsert new id
    update6   UPDATE OF geom          old ok, new ok             update bounds in place
    update7   UPDATE OF geom          old not ok, new ok         insert new id
    delete    DELETE                  old not null               delete old id
"""

import sqlite3
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Tuple

from util_logger import LoggerFactory, ComponentType


# ============================================================================
# IDENTIFIERS
# ============================================================================

def quote_identifier(name: str) -> str:
    """Double-quote an SQL identifier. No other escaping is applied."""
    return '"' + name.replace('"', '""') + '"'


def spatial_index_table_name(table: str, geometry_column: str) -> str:
    """Unquoted index table name, e.g. rtree_roads_geom."""
    return f"rtree_{table}_{geometry_column}"


# ============================================================================
# TRANSITION MODEL
# ============================================================================

class RowEvent(str, Enum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class GeometryState(str, Enum):
    """State of a geometry value as seen by the triggers."""
    NULL = "NULL"
    EMPTY = "EMPTY"
    PRESENT = "PRESENT"

    @property
    def qualifies(self) -> bool:
        """Whether a row in this state belongs in the index."""
        return self is GeometryState.PRESENT


@dataclass(frozen=True)
class RowTransition:
    """
    One row-level change on the base table.

    Attributes:
        event: INSERT, UPDATE or DELETE
        old_state: geometry before the change (None for INSERT)
        new_state: geometry after the change (None for DELETE)
        id_changed: the primary key was reassigned (UPDATE only)
        geometry_assigned: the geometry column appeared in the UPDATE's SET list
    """
    event: RowEvent
    old_state: Optional[GeometryState] = None
    new_state: Optional[GeometryState] = None
    id_changed: bool = False
    geometry_assigned: bool = False

    def __post_init__(self):
        if self.event is not RowEvent.INSERT and self.old_state is None:
            raise ValueError(f"{self.event.value} transition needs old_state")
        if self.event is not RowEvent.DELETE and self.new_state is None:
            raise ValueError(f"{self.event.value} transition needs new_state")
        if self.event is not RowEvent.UPDATE and (self.id_changed or self.geometry_assigned):
            raise ValueError("id_changed/geometry_assigned only apply to UPDATE")


class IndexActionKind(str, Enum):
    DELETE = "DELETE"   # DELETE FROM rtree WHERE id = ?
    INSERT = "INSERT"   # INSERT INTO rtree VALUES (...)
    UPSERT = "UPSERT"   # INSERT OR REPLACE INTO rtree VALUES (...)
    UPDATE = "UPDATE"   # UPDATE rtree SET bounds WHERE id = ?


@dataclass(frozen=True)
class IndexAction:
    """
    One write to the index table.

    INSERT/UPSERT/UPDATE take their bounds from the row's new geometry.
    """
    kind: IndexActionKind
    row_id: int


# ============================================================================
# SQL FRAGMENTS
# ============================================================================

def _qualifies(ref: str) -> str:
    return f"({ref} NOTNULL AND NOT ST_IsEmpty({ref}))"


def _disqualifies(ref: str) -> str:
    return f"({ref} ISNULL OR ST_IsEmpty({ref}))"


_BOUNDS_VALUES = (
    "NEW.{i},\n"
    "    ST_MinX(NEW.{c}), ST_MaxX(NEW.{c}),\n"
    "    ST_MinY(NEW.{c}), ST_MaxY(NEW.{c})"
)

_UPSERT_NEW = "INSERT OR REPLACE INTO {rtree} VALUES (\n    " + _BOUNDS_VALUES + "\n  );"
_INSERT_NEW = "INSERT INTO {rtree} VALUES (\n    " + _BOUNDS_VALUES + "\n  );"
_UPDATE_NEW = (
    "UPDATE {rtree} SET\n"
    "    minx = ST_MinX(NEW.{c}),\n"
    "    maxx = ST_MaxX(NEW.{c}),\n"
    "    miny = ST_MinY(NEW.{c}),\n"
    "    maxy = ST_MaxY(NEW.{c})\n"
    "  WHERE id = NEW.{i};"
)
_DELETE_OLD = "DELETE FROM {rtree} WHERE id = OLD.{i};"
_DELETE_BOTH = "DELETE FROM {rtree} WHERE id IN (OLD.{i}, NEW.{i});"


# ============================================================================
# TRIGGER CASE TABLE
# ============================================================================

class TriggerCase(Enum):
    """
    The seven index maintenance triggers.

    Values are the trigger name suffixes defined by the GeoPackage R-tree
    extension.
    """
    INSERT = "insert"
    UPDATE2 = "update2"
    UPDATE4 = "update4"
    UPDATE5 = "update5"
    UPDATE6 = "update6"
    UPDATE7 = "update7"
    DELETE = "delete"

    @property
    def suffix(self) -> str:
        return self.value

    @property
    def event(self) -> RowEvent:
        if self is TriggerCase.INSERT:
            return RowEvent.INSERT
        if self is TriggerCase.DELETE:
            return RowEvent.DELETE
        return RowEvent.UPDATE

    @property
    def requires_geometry_assignment(self) -> bool:
        """True for AFTER UPDATE OF <geometry column> triggers."""
        return self in (TriggerCase.UPDATE2, TriggerCase.UPDATE6, TriggerCase.UPDATE7)

    def matches(self, transition: RowTransition) -> bool:
        """Python mirror of the trigger's firing clause and WHEN condition."""
        if transition.event is not self.event:
            return False
        if self.requires_geometry_assignment and not transition.geometry_assigned:
            return False

        old, new = transition.old_state, transition.new_state

        if self is TriggerCase.INSERT:
            return new.qualifies
        if self is TriggerCase.DELETE:
            return old is not GeometryState.NULL
        if self is TriggerCase.UPDATE2:
            return not transition.id_changed and not new.qualifies
        if self is TriggerCase.UPDATE4:
            return transition.id_changed and not new.qualifies
        if self is TriggerCase.UPDATE5:
            return transition.id_changed and new.qualifies
        if self is TriggerCase.UPDATE6:
            return not transition.id_changed and new.qualifies and old.qualifies
        # UPDATE7
        return not transition.id_changed and new.qualifies and not old.qualifies

    def actions(self, old_id: Optional[int], new_id: Optional[int]) -> List[IndexAction]:
        """Index writes performed by the trigger body, in order."""
        if self is TriggerCase.INSERT:
            return [IndexAction(IndexActionKind.UPSERT, new_id)]
        if self in (TriggerCase.UPDATE2, TriggerCase.DELETE):
            return [IndexAction(IndexActionKind.DELETE, old_id)]
        if self is TriggerCase.UPDATE4:
            return [
                IndexAction(IndexActionKind.DELETE, old_id),
                IndexAction(IndexActionKind.DELETE, new_id),
            ]
        if self is TriggerCase.UPDATE5:
            return [
                IndexAction(IndexActionKind.DELETE, old_id),
                IndexAction(IndexActionKind.UPSERT, new_id),
            ]
        if self is TriggerCase.UPDATE6:
            return [IndexAction(IndexActionKind.UPDATE, new_id)]
        # UPDATE7
        return [IndexAction(IndexActionKind.INSERT, new_id)]

    def _firing_clause(self) -> str:
        if self is TriggerCase.INSERT:
            return "AFTER INSERT ON {t}"
        if self is TriggerCase.DELETE:
            return "AFTER DELETE ON {t}"
        if self.requires_geometry_assignment:
            return "AFTER UPDATE OF {c} ON {t}"
        return "AFTER UPDATE ON {t}"

    def _when_clause(self) -> str:
        new_ok, new_not_ok = _qualifies("NEW.{c}"), _disqualifies("NEW.{c}")
        old_ok, old_not_ok = _qualifies("OLD.{c}"), _disqualifies("OLD.{c}")
        same_id, other_id = "OLD.{i} = NEW.{i}", "OLD.{i} != NEW.{i}"

        return {
            TriggerCase.INSERT: new_ok,
            TriggerCase.UPDATE2: f"{same_id} AND\n       {new_not_ok}",
            TriggerCase.UPDATE4: f"{other_id} AND\n       {new_not_ok}",
            TriggerCase.UPDATE5: f"{other_id} AND\n       {new_ok}",
            TriggerCase.UPDATE6: f"{same_id} AND\n       {new_ok} AND\n       {old_ok}",
            TriggerCase.UPDATE7: f"{same_id} AND\n       {new_ok} AND\n       {old_not_ok}",
            TriggerCase.DELETE: "OLD.{c} NOTNULL",
        }[self]

    def _body(self) -> str:
        return {
            TriggerCase.INSERT: _UPSERT_NEW,
            TriggerCase.UPDATE2: _DELETE_OLD,
            TriggerCase.UPDATE4: _DELETE_BOTH,
            TriggerCase.UPDATE5: _DELETE_OLD + "\n  " + _UPSERT_NEW,
            TriggerCase.UPDATE6: _UPDATE_NEW,
            TriggerCase.UPDATE7: _INSERT_NEW,
            TriggerCase.DELETE: _DELETE_OLD,
        }[self]

    def template(self) -> str:
        """CREATE TRIGGER text with {trigger}, {t}, {c}, {i}, {rtree} placeholders."""
        return (
            "CREATE TRIGGER {trigger} " + self._firing_clause() + "\n"
            "  WHEN " + self._when_clause() + "\n"
            "BEGIN\n"
            "  " + self._body() + "\n"
            "END"
        )


def fired_cases(transition: RowTransition) -> List[TriggerCase]:
    """Triggers that fire for a transition. At most one ever does."""
    return [case for case in TriggerCase if case.matches(transition)]


def plan_index_actions(
    transition: RowTransition,
    old_id: Optional[int] = None,
    new_id: Optional[int] = None,
) -> List[IndexAction]:
    """
    Index writes the installed triggers perform for one row change.

    Args:
        transition: The row change
        old_id: Row id before the change (UPDATE/DELETE)
        new_id: Row id after the change (INSERT/UPDATE)

    Returns:
        Ordered list of IndexAction, empty when no trigger fires
    """
    actions: List[IndexAction] = []
    for case in fired_cases(transition):
        actions.extend(case.actions(old_id, new_id))
    return actions


# ============================================================================
# GENERATOR
# ============================================================================

@dataclass(frozen=True)
class SpatialIndexGenerator:
    """
    SQL text for the spatial index of one geometry column.

    Identifiers are double-quoted; callers are responsible for passing sane
    table and column names.

    Example:
        gen = SpatialIndexGenerator("roads", "geom", "fid")
        conn.execute(gen.create_sql())
        conn.execute(gen.load_sql())
        for statement in gen.triggers_sql():
            conn.execute(statement)
    """
    table: str
    geometry_column: str
    id_column: str

    @property
    def index_table(self) -> str:
        return spatial_index_table_name(self.table, self.geometry_column)

    def trigger_name(self, case: TriggerCase) -> str:
        return f"{self.index_table}_{case.suffix}"

    def trigger_names(self) -> Tuple[str, ...]:
        return tuple(self.trigger_name(case) for case in TriggerCase)

    def create_sql(self) -> str:
        return (
            f"CREATE VIRTUAL TABLE {quote_identifier(self.index_table)} "
            f"USING rtree(id, minx, maxx, miny, maxy)"
        )

    def load_sql(self) -> str:
        """Idempotent bulk load of every qualifying row."""
        c = quote_identifier(self.geometry_column)
        return (
            f"INSERT OR REPLACE INTO {quote_identifier(self.index_table)}\n"
            f"  SELECT {quote_identifier(self.id_column)}, "
            f"ST_MinX({c}), ST_MaxX({c}), ST_MinY({c}), ST_MaxY({c})\n"
            f"  FROM {quote_identifier(self.table)} "
            f"WHERE {c} NOT NULL AND NOT ST_IsEmpty({c})"
        )

    def drop_sql(self) -> str:
        return f"DROP TABLE IF EXISTS {quote_identifier(self.index_table)}"

    def trigger_sql(self, case: TriggerCase) -> str:
        return case.template().format(
            trigger=quote_identifier(self.trigger_name(case)),
            t=quote_identifier(self.table),
            c=quote_identifier(self.geometry_column),
            i=quote_identifier(self.id_column),
            rtree=quote_identifier(self.index_table),
        )

    def triggers_sql(self) -> List[str]:
        """All seven CREATE TRIGGER statements, in TriggerCase order."""
        return [self.trigger_sql(case) for case in TriggerCase]

    def drop_triggers_sql(self) -> List[str]:
        return [
            f"DROP TRIGGER IF EXISTS {quote_identifier(name)}"
            for name in self.trigger_names()
        ]

    # ------------------------------------------------------------------------
    # Execution helpers
    # ------------------------------------------------------------------------

    def install(self, conn: sqlite3.Connection) -> None:
        """
        Create, bulk load and attach triggers.

        Runs inside whatever transaction the caller holds; the spatial
        functions must already be registered on conn.
        """
        logger = LoggerFactory.create_with_context(
            ComponentType.GENERATOR, "SpatialIndexGenerator",
            layer_name=self.table, geometry_column=self.geometry_column,
        )
        logger.debug(f"Creating index table {self.index_table}")
        conn.execute(self.create_sql())
        conn.execute(self.load_sql())
        for statement in self.triggers_sql():
            logger.debug(statement)
            conn.execute(statement)
        logger.info(f"✅ Spatial index installed: {self.index_table}")

    def uninstall(self, conn: sqlite3.Connection) -> None:
        """Drop the triggers, then the index table."""
        logger = LoggerFactory.create_with_context(
            ComponentType.GENERATOR, "SpatialIndexGenerator",
            layer_name=self.table, geometry_column=self.geometry_column,
        )
        for statement in self.drop_triggers_sql():
            conn.execute(statement)
        conn.execute(self.drop_sql())
        logger.info(f"Spatial index dropped: {self.index_table}")
