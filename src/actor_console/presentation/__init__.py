from actor_console.presentation.results import (
    Cell,
    ResultTable,
    collect_columns,
    stringify_value,
    truncate_text,
)
from actor_console.presentation.run_summary import (
    RunSummary,
    dataset_console_url,
    summarize_run,
)

__all__ = [
    "Cell",
    "ResultTable",
    "RunSummary",
    "collect_columns",
    "dataset_console_url",
    "stringify_value",
    "summarize_run",
    "truncate_text",
]
