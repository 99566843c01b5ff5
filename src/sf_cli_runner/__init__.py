from .analysis import LogAnalysis, analyze_log
from .bulk import BulkOperation, BulkPlan, BulkRequest, prepare_bulk, run_bulk, submit_bulk_job
from .classifier import (
    ApexRun,
    CommandResult,
    CompileProblem,
    OperationKind,
    ResultCategory,
    RuntimeProblem,
    classify,
)
from .errors import JobStateError, ValidationError
from .execution import ArgvRunner, CommandInvocation, ExecutionOutcome, ShellRunner, execute, select_runner
from .jobs import JobDescriptor, JobState, RecordFailure
from .logparse import LogRecord, UsageCounter, extract_debug_lines, extract_usage_stats
from .policy import ToolPolicy
from .preview import PreviewSample, preview, preview_file, requires_explicit_warning
from .runner import (
    fetch_log,
    parse_field_values,
    run_apex,
    run_describe,
    run_query,
    run_record_insert,
    run_record_update,
    run_record_upsert,
)

__all__ = [
    "ApexRun",
    "ArgvRunner",
    "BulkOperation",
    "BulkPlan",
    "BulkRequest",
    "CommandInvocation",
    "CommandResult",
    "CompileProblem",
    "ExecutionOutcome",
    "JobDescriptor",
    "JobState",
    "JobStateError",
    "LogAnalysis",
    "LogRecord",
    "OperationKind",
    "PreviewSample",
    "RecordFailure",
    "ResultCategory",
    "RuntimeProblem",
    "ShellRunner",
    "ToolPolicy",
    "UsageCounter",
    "ValidationError",
    "analyze_log",
    "classify",
    "execute",
    "extract_debug_lines",
    "extract_usage_stats",
    "fetch_log",
    "parse_field_values",
    "prepare_bulk",
    "preview",
    "preview_file",
    "requires_explicit_warning",
    "run_apex",
    "run_bulk",
    "run_describe",
    "run_query",
    "run_record_insert",
    "run_record_update",
    "run_record_upsert",
    "select_runner",
    "submit_bulk_job",
]
