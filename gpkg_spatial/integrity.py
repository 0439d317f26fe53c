# ============================================================================
# MODULE CONTEXT - SPATIAL INDEX INTEGRITY
# ============================================================================
# STATUS: Core - Index consistency verification
# PURPOSE: Check that every layer's rtree table mirrors its base table
# EXPORTS: HealthStatus, CheckResult, check_spatial_index, check_triggers, get_integrity_report
# DEPENDENCIES: sqlite3, shapely, util_logger
# PATTERNS: Health-check results (pass/fail + latency + details), two-tier status
# ============================================================================

"""
Spatial Index Integrity Checks

For every feature layer:

1. Spatial index (critical):
   - the rtree table holds exactly one row per base row whose geometry is
     neither NULL nor Empty
   - each row's bounds equal ST_MinX/ST_MaxX/ST_MinY/ST_MaxY of that geometry
   - failure means UNHEALTHY

2. Triggers (non-critical):
   - all seven maintenance triggers exist
   - failure means DEGRADED (index is correct now but will drift)

R*Tree stores 32-bit floats, rounding outward, so bounds are compared with a
small relative tolerance.

Usage:
    from gpkg_spatial.integrity import get_integrity_report

    report = get_integrity_report(gpkg)
    # {"status": "healthy", "layers": {...}, ...}
"""

import math
import sqlite3
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from shapely.errors import GEOSException

from util_logger import LoggerFactory, ComponentType

from .bounds import BoundingBox
from .errors import GeoPackageError
from .rtree import quote_identifier

logger = LoggerFactory.create_logger(ComponentType.VALIDATOR, "IntegrityCheck")

# Relative tolerance for float32 rtree bounds
REL_TOLERANCE = 1e-6
ABS_TOLERANCE = 1e-9

# Cap on ids listed per category in check details
MAX_LISTED_IDS = 20

_CHECK_ERRORS = (sqlite3.Error, GeoPackageError, GEOSException)


# ============================================================================
# Health Status Enum
# ============================================================================

class HealthStatus(str, Enum):
    """Overall integrity status."""
    HEALTHY = "healthy"
    DEGRADED = "degraded"      # Triggers missing, index currently consistent
    UNHEALTHY = "unhealthy"    # Index diverges from base table


# ============================================================================
# Data Classes
# ============================================================================

@dataclass
class CheckResult:
    """Result of a single integrity check."""
    status: str              # "pass" or "fail"
    latency_ms: float        # Time taken for check
    message: str             # Human-readable status message
    details: Optional[Dict[str, Any]] = None  # Additional details

    @property
    def passed(self) -> bool:
        return self.status == "pass"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary, excluding None values."""
        result = {
            "status": self.status,
            "latency_ms": round(self.latency_ms, 2),
            "message": self.message
        }
        if self.details:
            result["details"] = self.details
        return result


def bounds_match(expected: BoundingBox, actual: BoundingBox) -> bool:
    """Compare bounds within float32 tolerance."""
    return all(
        math.isclose(e, a, rel_tol=REL_TOLERANCE, abs_tol=ABS_TOLERANCE)
        for e, a in zip(expected.as_tuple(), actual.as_tuple())
    )


# ============================================================================
# Check Functions
# ============================================================================

def check_spatial_index(gpkg, layer: str) -> CheckResult:
    """
    Compare a layer's rtree table against its base table.

    Critical check - failure means UNHEALTHY status.

    Args:
        gpkg: Open GeoPackage
        layer: Layer name

    Returns:
        CheckResult with row counts and the ids that are missing, stale or
        carry wrong bounds
    """
    start_time = time.perf_counter()

    try:
        info = gpkg.get_layer(layer)
        g = quote_identifier(info.geometry_column)
        expected_rows = gpkg.connection.execute(
            f"SELECT {quote_identifier(info.primary_key)}, "
            f"ST_MinX({g}), ST_MaxX({g}), ST_MinY({g}), ST_MaxY({g}) "
            f"FROM {quote_identifier(layer)} "
            f"WHERE {g} NOT NULL AND NOT ST_IsEmpty({g})"
        ).fetchall()
        expected = {row[0]: BoundingBox(*row[1:]) for row in expected_rows}
        actual = gpkg.index_entries(layer)

        missing = sorted(set(expected) - set(actual))
        stale = sorted(set(actual) - set(expected))
        mismatched = sorted(
            fid for fid in set(expected) & set(actual)
            if not bounds_match(expected[fid], actual[fid])
        )

        latency_ms = (time.perf_counter() - start_time) * 1000
        details = {
            "layer": layer,
            "index_table": info.index_table,
            "expected_rows": len(expected),
            "index_rows": len(actual),
            "missing_ids": missing[:MAX_LISTED_IDS],
            "stale_ids": stale[:MAX_LISTED_IDS],
            "mismatched_ids": mismatched[:MAX_LISTED_IDS],
        }

        if missing or stale or mismatched:
            logger.warning(
                f"Spatial index diverged for {layer}: "
                f"{len(missing)} missing, {len(stale)} stale, {len(mismatched)} mismatched"
            )
            return CheckResult(
                status="fail",
                latency_ms=latency_ms,
                message=f"Spatial index out of sync ({len(missing) + len(stale) + len(mismatched)} ids)",
                details=details
            )

        return CheckResult(
            status="pass",
            latency_ms=latency_ms,
            message=f"{len(actual)} index rows consistent",
            details=details
        )

    except _CHECK_ERRORS as e:
        latency_ms = (time.perf_counter() - start_time) * 1000
        logger.error(f"Spatial index check failed for {layer}: {e}")

        return CheckResult(
            status="fail",
            latency_ms=latency_ms,
            message=f"Spatial index check failed: {type(e).__name__}",
            details={"layer": layer, "error": str(e)}
        )


def check_triggers(gpkg, layer: str) -> CheckResult:
    """
    Verify the seven index maintenance triggers exist.

    Non-critical check - failure means DEGRADED status.
    """
    start_time = time.perf_counter()

    try:
        generator = gpkg.spatial_index(layer)
        rows = gpkg.connection.execute(
            "SELECT name FROM sqlite_master WHERE type = 'trigger' AND tbl_name = ?",
            (layer,)
        ).fetchall()
        present = {row[0] for row in rows}
        expected = generator.trigger_names()
        missing = [name for name in expected if name not in present]

        latency_ms = (time.perf_counter() - start_time) * 1000

        if missing:
            logger.warning(f"Missing index triggers on {layer}: {', '.join(missing)}")
            return CheckResult(
                status="fail",
                latency_ms=latency_ms,
                message=f"{len(missing)} of {len(expected)} triggers missing",
                details={"layer": layer, "missing_triggers": missing}
            )

        return CheckResult(
            status="pass",
            latency_ms=latency_ms,
            message=f"All {len(expected)} triggers present",
            details={"layer": layer}
        )

    except _CHECK_ERRORS as e:
        latency_ms = (time.perf_counter() - start_time) * 1000
        logger.error(f"Trigger check failed for {layer}: {e}")

        return CheckResult(
            status="fail",
            latency_ms=latency_ms,
            message=f"Trigger check failed: {type(e).__name__}",
            details={"layer": layer, "error": str(e)}
        )


# ============================================================================
# Main Entry Point
# ============================================================================

def get_integrity_report(gpkg) -> Dict[str, Any]:
    """
    Run both checks on every layer.

    Returns:
        Dict with overall status, per-layer check results and timing
    """
    start_time = time.perf_counter()
    check_id = str(uuid.uuid4())[:8]

    layers = {}
    critical_failures = []
    non_critical_failures = []

    for layer in gpkg.list_layers():
        index_result = check_spatial_index(gpkg, layer)
        trigger_result = check_triggers(gpkg, layer)
        layers[layer] = {
            "spatial_index": index_result.to_dict(),
            "triggers": trigger_result.to_dict(),
        }
        if not index_result.passed:
            critical_failures.append(layer)
        elif not trigger_result.passed:
            non_critical_failures.append(layer)

    if critical_failures:
        status = HealthStatus.UNHEALTHY
    elif non_critical_failures:
        status = HealthStatus.DEGRADED
    else:
        status = HealthStatus.HEALTHY

    total_duration = (time.perf_counter() - start_time) * 1000

    logger.info("Integrity check completed", extra={
        'custom_dimensions': {
            'status': status.value,
            'duration_ms': round(total_duration, 2),
            'check_id': check_id,
            'critical_failures': critical_failures,
            'non_critical_failures': non_critical_failures,
            'layer_count': len(layers)
        }
    })

    return {
        "status": status.value,
        "gpkg_path": gpkg.path,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "check_id": check_id,
        "layers": layers,
        "total_duration_ms": round(total_duration, 2)
    }
