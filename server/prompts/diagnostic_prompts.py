from mcp_app import mcp


@mcp.prompt()
def interpret_health_check(db_name: str):
    """Walk through a full health check and rank the findings"""
    tool_call = f'run_diagnostic_report(db_name="{db_name}", report="health_check")'

    return f"""Run a health check on this Oracle database and interpret it.

Database: {db_name}

Use tool: {tool_call}

Focus on:
- Cache and library hit ratios graded POOR or ACCEPTABLE
- Tablespaces above 85% used and their growth
- Blocking sessions and long waits
- Backup age and archive destinations in error
- Data Guard transport/apply lag
- Sections returned with status 'error' (missing grants or licence)

Rank findings CRITICAL / WARNING / INFO and give the next command to run for each."""


@mcp.prompt()
def interpret_wait_events(db_name: str, days_back: int = 1):
    """Explain where the database spent its time from AWR wait events"""
    tool_call = (
        f'run_diagnostic_report(db_name="{db_name}", report="awr_wait_events", '
        f'parameters={{"filter_type": 1, "days_back": {days_back}, "group_option": 2}})'
    )

    return f"""Analyze AWR wait events for the last {days_back} day(s).

Database: {db_name}

Use tool: {tool_call}

Focus on:
- Top events by total wait time and their wait class
- Average wait per event (ms) compared to typical values for that event
- User I/O vs Concurrency vs Cluster vs Commit classes
- Whether a rerun grouped by hour (group_option=3) would show a peak window

Ignore idle events. If AWR sections failed, say the Diagnostics Pack is required."""


@mcp.prompt()
def interpret_lock_analysis(db_name: str):
    """Explain current blocking and what to do about it"""
    tool_call = f'run_diagnostic_report(db_name="{db_name}", report="lock_analysis")'

    return f"""Explain the current locking situation.

Database: {db_name}

Use tool: {tool_call}

Focus on:
- Root blockers in the blocking tree and how many sessions wait on each
- What the blocker is running (SQL text) and whether it is idle in a transaction
- Long transactions and their undo usage
- Objects most frequently involved

The KILL SESSION commands are reference text only. Recommend them only for a root
blocker, and say what will be rolled back."""
