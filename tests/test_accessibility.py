from __future__ import annotations

import json
from types import SimpleNamespace

from webgate.config import AccessibilitySettings, parse_config
from webgate.runners.accessibility import (
    MAX_NODES_PER_VIOLATION,
    MAX_VIOLATIONS,
    count_by_impact,
    evaluate_rules,
    extract_details,
    run_accessibility_scan,
    sanitize_text,
)

CLEAN_PAGE = """
<!doctype html>
<html lang="en">
<head><title>Shop</title><meta name="viewport" content="width=device-width, initial-scale=1"></head>
<body>
  <img src="logo.png" alt="Shop logo">
  <a href="/cart">Cart</a>
  <button aria-label="Close"></button>
  <label for="email">Email</label><input id="email" type="email">
  <label>Name <input type="text"></label>
  <input type="hidden" name="csrf">
  <iframe src="/map" title="Store map"></iframe>
</body>
</html>
"""

BROKEN_PAGE = """
<!doctype html>
<html>
<head><meta name="viewport" content="width=device-width, user-scalable=no"></head>
<body>
  <img src="hero.png">
  <img src="spacer.gif" role="presentation">
  <a href="/next"></a>
  <a href="/home"><img src="home.png" alt="Home"></a>
  <button></button>
  <input type="text" id="search">
  <div id="dup"></div><div id="dup"></div>
  <iframe src="/ads"></iframe>
</body>
</html>
"""


def _ids(violations):
    return sorted(violation["id"] for violation in violations)


def test_clean_page_has_no_violations():
    assert evaluate_rules(CLEAN_PAGE) == []


def test_broken_page_violations():
    violations = evaluate_rules(BROKEN_PAGE)
    assert _ids(violations) == sorted(
        [
            "image-alt",
            "html-has-lang",
            "document-title",
            "link-name",
            "button-name",
            "label",
            "duplicate-id",
            "frame-title",
            "meta-viewport",
        ]
    )
    image_alt = next(violation for violation in violations if violation["id"] == "image-alt")
    assert image_alt["impact"] == "critical"
    assert "wcag2a" in image_alt["tags"]
    assert image_alt["helpUrl"].endswith("/image-alt")
    assert len(image_alt["nodes"]) == 1
    assert "hero.png" in image_alt["nodes"][0]["html"]

    label = next(violation for violation in violations if violation["id"] == "label")
    assert label["nodes"][0]["target"] == ["#search"]


def test_rule_and_tag_filters():
    only = AccessibilitySettings(include_rules=["image-alt", "label"])
    assert _ids(evaluate_rules(BROKEN_PAGE, only)) == ["image-alt", "label"]

    skip = AccessibilitySettings(exclude_rules=["duplicate-id"])
    assert "duplicate-id" not in _ids(evaluate_rules(BROKEN_PAGE, skip))

    aa_only = AccessibilitySettings(include_tags=["wcag2aa"])
    assert _ids(evaluate_rules(BROKEN_PAGE, aa_only)) == ["meta-viewport"]

    no_parsing = AccessibilitySettings(exclude_tags=["cat.parsing"])
    assert "duplicate-id" not in _ids(evaluate_rules(BROKEN_PAGE, no_parsing))


def test_count_by_impact():
    counts = count_by_impact(evaluate_rules(BROKEN_PAGE))
    assert counts == {"critical": 4, "serious": 4, "moderate": 0, "minor": 1}


def test_sanitize_text():
    assert sanitize_text("  a \n\n b  ", 10) == "a b"
    assert sanitize_text("abcdef", 3) == "abc…"
    assert sanitize_text(None, 3) == ""


def test_extract_details_caps():
    node = {"target": ["#x"], "html": "<div>" + "y" * 600 + "</div>", "failureSummary": "Fix it"}
    violations = [
        {"id": f"rule-{index}", "impact": "minor", "tags": ["wcag2a", "wcag111", "cat.x"], "nodes": [node] * 60}
        for index in range(MAX_VIOLATIONS + 2)
    ]

    details, metadata = extract_details(violations)

    assert len(details) == MAX_VIOLATIONS
    assert len(details[0]["nodes"]) == MAX_NODES_PER_VIOLATION
    assert details[0]["wcagTags"] == ["wcag2a", "wcag111"]
    assert len(details[0]["nodes"][0]["htmlSnippet"]) == 501
    assert metadata == {
        "totalViolations": MAX_VIOLATIONS + 2,
        "keptViolations": MAX_VIOLATIONS,
        "droppedViolations": 2,
        "droppedNodes": MAX_VIOLATIONS * 10,
    }


def test_run_accessibility_scan_writes_report(tmp_path):
    page = SimpleNamespace(url="https://example.com/", content=lambda: BROKEN_PAGE)
    config = parse_config({"accessibility": {"includeRules": ["image-alt", "frame-title"]}})

    summary = run_accessibility_scan(page, tmp_path, config)

    assert summary["violations"] == 2
    assert summary["countsByImpact"]["critical"] == 1
    assert summary["countsByImpact"]["serious"] == 1
    assert summary["reportPath"] == str(tmp_path / "axe.json")
    report = json.loads((tmp_path / "axe.json").read_text(encoding="utf-8"))
    assert report["url"] == "https://example.com/"
    assert len(report["violations"]) == 2
    assert summary["metadata"]["totalViolations"] == 2
