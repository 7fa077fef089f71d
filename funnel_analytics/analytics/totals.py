"""
Totals Reconciler

Merges per-group funnels into the synthetic "Totals" row.

Groups do not all expose the same steps (a 9-step lead funnel next to a
6-step call funnel), so each step's land base is the sum of the land bases
of only the groups that reached that step. A step no group reached falls
back to the flat total land base.
"""

from collections import defaultdict
from typing import Dict, List, Sequence

from funnel_analytics.analytics.funnel import StepCount, StepKey, compute_rates
from funnel_analytics.analytics.schemas import DrilldownRow

TOTALS_LABEL = "Totals"


def reconcile_totals(rows: Sequence[DrilldownRow]) -> DrilldownRow:
    """
    Build the totals row for a set of drilldown rows.

    Row counts are summed directly; grouping dimensions partition sessions.
    """
    unique_views = sum(row.unique_views for row in rows)
    gross_views = sum(row.gross_views for row in rows)
    page_lands = sum(row.page_lands for row in rows)
    form_completions = sum(row.form_completions for row in rows)
    flat_base = page_lands if page_lands > 0 else unique_views

    completions: Dict[StepKey, int] = defaultdict(int)
    with_prev: Dict[StepKey, int] = defaultdict(int)
    step_bases: Dict[StepKey, int] = defaultdict(int)

    for row in rows:
        for step in row.steps:
            key = StepKey(step.step_number, step.step_name)
            completions[key] += step.completions
            with_prev[key] += step.sessions_with_prev
            if step.completions > 0:
                step_bases[key] += row.land_base

    keys: List[StepKey] = sorted(completions)
    counts = [StepCount(key=key, completions=completions[key], sessions_with_prev=with_prev[key]) for key in keys]
    land_bases = [step_bases.get(key) or flat_base for key in keys]

    return DrilldownRow(
        group_value=TOTALS_LABEL,
        unique_views=unique_views,
        gross_views=gross_views,
        page_lands=page_lands,
        form_completions=form_completions,
        steps=compute_rates(counts, land_bases),
    )
