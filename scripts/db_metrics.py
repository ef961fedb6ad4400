"""Print pool counters and progression row totals as one JSON line."""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone

from sqlalchemy import func, select

from keydojo.db.models import ProgressionAuditEventModel, ProgressionModel
from keydojo.db.monitoring import get_pool_snapshot
from keydojo.db.session import get_engine, session_scope

LOGGER = logging.getLogger("keydojo.db_metrics")


def collect() -> dict:
    with session_scope(commit=False) as session:
        progressions = session.execute(select(func.count(ProgressionModel.id))).scalar_one()
        audit_events = session.execute(select(func.count(ProgressionAuditEventModel.id))).scalar_one()
    return {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "progressions": progressions,
        "audit_events": audit_events,
        "pool": get_pool_snapshot(get_engine()),
    }


def main() -> int:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    try:
        print(json.dumps(collect()))
        return 0
    except Exception as exc:  # noqa: BLE001
        LOGGER.exception("Failed to collect database metrics: %s", exc)
        return 1


if __name__ == "__main__":
    sys.exit(main())
