"""Top-level package for the Profit First forecast engine.

The primary modules are:

* ``statement`` – parsing of pasted or uploaded P&L statements
* ``accounts`` – the bucket catalog and row-to-bucket suggestions
* ``recurrence`` – expansion of projection lines into dated occurrences
* ``aggregate`` / ``forecast`` – period totals and the balance roll-forward
* ``rollout`` – quarterly glide from the current allocation mix to a target
* ``service`` – ties a :class:`~pf_forecast.db.SQLiteStore` to the engine

To run a forecast from the command line you can execute:

```bash
python scripts/run_forecast.py --client <id> --start 2025-01
```
"""

from .errors import AccountLimitError, ForecastError, InvalidAccountName, RecordError  # noqa: F401

__version__ = "0.1.0"

__all__ = [
    "AccountLimitError",
    "ForecastError",
    "InvalidAccountName",
    "RecordError",
    "__version__",
]
