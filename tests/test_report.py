from dataclasses import replace
from datetime import datetime, timezone

import pytest

from analysis.models import RecommendationRow, ResourceValue
from analysis.report import ReportBuilder, row_to_dict, savings_text
from conftest import MIB

P = ResourceValue.present
A = ResourceValue.absent
U = ResourceValue.undetermined


def make_row(workload, container, cpu_delta=0.0, memory_delta=0.0, observations=None):
    return RecommendationRow(
        namespace="shop", workload=workload, container=container,
        recommended_request_cpu=P(0.3), recommended_limit_cpu=U(),
        recommended_request_memory=P(300 * MIB), recommended_limit_memory=P(500 * MIB),
        current_request_cpu=A(), current_limit_cpu=P(1.0),
        current_request_memory=P(256 * MIB), current_limit_memory=A(),
        cpu_delta=cpu_delta, memory_delta=memory_delta,
        observations=observations or [],
    )


def test_rows_kept_in_insertion_order():
    builder = ReportBuilder()
    builder.add([make_row("zeta", "b"), make_row("zeta", "a")], 0.0, 0.0)
    builder.add([make_row("alpha", "x")], 0.0, 0.0)

    assert [(r.workload, r.container) for r in builder.rows] == [("zeta", "b"), ("zeta", "a"), ("alpha", "x")]


def test_totals_order_independent():
    contributions = [(-0.9, -300 * MIB), (1.5, 200 * MIB), (0.2, 0.0)]
    forward, backward = ReportBuilder(), ReportBuilder()
    for cpu, mem in contributions:
        forward.add([], cpu, mem)
    for cpu, mem in reversed(contributions):
        backward.add([], cpu, mem)

    assert forward.totals[0] == pytest.approx(backward.totals[0])
    assert forward.totals[1] == pytest.approx(backward.totals[1])
    assert forward.totals[0] == pytest.approx(0.8)


def test_row_display_marks_absent_and_undetermined():
    d = row_to_dict(make_row("api", "web"))
    assert d["display"]["request_cpu"] == "300m (absent)"
    assert d["display"]["limit_cpu"] == "could not determine (1000m)"
    assert d["display"]["request_memory"] == "300Mi (256Mi)"
    assert d["display"]["limit_memory"] == "500Mi (absent)"
    assert d["current"]["request_cpu"] == {"state": "absent", "amount": None}


def test_build_summary():
    builder = ReportBuilder()
    builder.add([make_row("api", "web", observations=["Could not determine CPU Limits from prometheus"])],
                -0.9, 512 * MIB)
    at = datetime(2026, 1, 1, tzinfo=timezone.utc)

    report = builder.build(["shop"], "1w", 0.9, 1.2, generated_at=at)

    assert report["generated_at"] == "2026-01-01T00:00:00+00:00"
    assert report["analysis_scope"] == {
        "namespaces": ["shop"], "window": "1w", "request_quantile": 0.9, "limit_margin": 1.2,
    }
    assert len(report["rows"]) == 1
    summary = report["summary"]
    assert summary["workloads"] == 1
    assert summary["containers_with_gaps"] == 1
    assert summary["total_cpu_delta_cores"] == -0.9
    assert summary["text"] == "Need 0.90 more CPU cores; Save 512MiB memory"


def test_gaps_counted_from_undetermined_values():
    gap = make_row("api", "web")  # limit cpu undetermined, no observation text
    complete = replace(make_row("api", "sidecar"), recommended_limit_cpu=P(0.5),
                       observations=["Could not determine something unrelated"])
    builder = ReportBuilder()
    builder.add([gap, complete], 0.0, 0.0)

    summary = builder.build(["shop"], "1w", 0.9, 1.2)["summary"]

    assert summary["containers"] == 2
    assert summary["containers_with_gaps"] == 1


def test_savings_text_no_change():
    assert savings_text(1e-17, 0.0) == "No significant changes"


def test_savings_text_gib():
    assert savings_text(2.5, 3 * 1024 * MIB) == "Save 2.50 CPU cores; Save 3.0GiB memory"
