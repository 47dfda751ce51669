"""Tests for specflow.lib.specparse module."""

from specflow.lib.specparse import (
    extract_clarification_markers,
    find_requirement_refs,
    mentions,
    normalize_requirement_id,
    parse_requirements,
    parse_sections,
    section_name,
)


SPEC = """\
# Feature: Login

## Requirements

- **FR-001**: Users can log in with email and password
- FR-2: Users can reset their password
NFR-1. Login completes in under 200ms
* **NFR-2** - Passwords are hashed

Mentions FR-9 mid-line, which is not a definition.

```
FR-3: inside a code fence
```

<!--
FR-4: inside a comment
-->
"""


class TestParseRequirements:
    """Tests for requirement extraction."""

    def test_ids_in_document_order(self):
        reqs, _ = parse_requirements(SPEC)
        assert [r.id for r in reqs] == ["FR-1", "FR-2", "NFR-1", "NFR-2"]

    def test_text_and_kind(self):
        reqs, _ = parse_requirements(SPEC)
        assert reqs[0].text == "Users can log in with email and password"
        assert reqs[0].kind == "functional"
        assert reqs[2].kind == "non-functional"
        assert reqs[3].text == "Passwords are hashed"

    def test_line_numbers(self):
        reqs, _ = parse_requirements(SPEC)
        assert reqs[0].line_number == 5

    def test_mid_line_mentions_are_not_definitions(self):
        reqs, _ = parse_requirements(SPEC)
        assert "FR-9" not in {r.id for r in reqs}

    def test_fences_and_comments_skipped(self):
        reqs, _ = parse_requirements(SPEC)
        assert not {"FR-3", "FR-4"} & {r.id for r in reqs}

    def test_trailing_comment_keeps_requirement(self):
        reqs, _ = parse_requirements("FR-1: Users log in <!-- keep short -->\nFR-2: Reset\n")
        assert [(r.id, r.text) for r in reqs] == [("FR-1", "Users log in"), ("FR-2", "Reset")]

    def test_comment_opening_and_closing_mid_line(self):
        text = (
            "FR-3: Remember me <!-- open\n"
            "FR-4: inside the comment\n"
            "still inside --> then FR-5 mid-line\n"
            "<!-- a --> FR-6: after an inline comment\n"
        )
        reqs, _ = parse_requirements(text)
        assert [r.id for r in reqs] == ["FR-3", "FR-6"]
        assert reqs[1].line_number == 4

    def test_fence_inside_comment_ignored(self):
        reqs, _ = parse_requirements("<!--\n```\n-->\nFR-1: counted\n")
        assert [r.id for r in reqs] == ["FR-1"]

    def test_duplicates_first_wins(self):
        reqs, duplicates = parse_requirements("FR-1: first\nFR-01: second\n")
        assert [r.text for r in reqs] == ["first"]
        assert duplicates == ["FR-1"]

    def test_empty(self):
        assert parse_requirements("") == ([], [])


class TestRequirementRefs:
    """Tests for requirement id tokens."""

    def test_normalize(self):
        assert normalize_requirement_id("FR-001") == "FR-1"
        assert normalize_requirement_id("nfr-10") == "NFR-10"

    def test_find_refs(self):
        assert find_requirement_refs("Covers FR-1, FR-002 and NFR-3.") == {"FR-1", "FR-2", "NFR-3"}

    def test_no_partial_tokens(self):
        assert find_requirement_refs("XFR-1 FR-") == set()


class TestClarificationMarkers:
    """Tests for [NEEDS CLARIFICATION: ...] extraction."""

    def test_markers_in_order(self):
        text = (
            "Auth via [NEEDS CLARIFICATION: which identity provider?]\n"
            "Retention [NEEDS CLARIFICATION:  how long are sessions kept? ]\n"
        )
        assert extract_clarification_markers(text) == [
            "which identity provider?",
            "how long are sessions kept?",
        ]

    def test_duplicates_collapsed(self):
        text = "[NEEDS CLARIFICATION: a?] and again [NEEDS CLARIFICATION: a?]"
        assert extract_clarification_markers(text) == ["a?"]

    def test_none(self):
        assert extract_clarification_markers("All clear.") == []


class TestSections:
    """Tests for plan section extraction."""

    PLAN = """\
# Plan
## Overview
## 1. **Auth Service**
### Session Store
#### Detail level
```
## Not a heading
```
"""

    def test_default_levels(self):
        titles = [s.title for s in parse_sections(self.PLAN)]
        assert titles == ["Overview", "1. **Auth Service**", "Session Store"]

    def test_custom_levels(self):
        sections = parse_sections(self.PLAN, [4])
        assert [s.title for s in sections] == ["Detail level"]
        assert sections[0].level == 4

    def test_heading_with_trailing_comment(self):
        sections = parse_sections("## Mailer <!-- owned by platform -->\n<!-- ## Hidden -->\n")
        assert [s.title for s in sections] == ["Mailer"]

    def test_section_name(self):
        assert section_name("1. **Auth Service**") == "Auth Service"
        assert section_name("Phase 2: `Token API`") == "Token API"
        assert section_name("3.1 Data Model:") == "Data Model"

    def test_mentions(self):
        assert mentions("Build the session\n store", "Session Store")
        assert not mentions("Build the sessions", "Session Store")
        assert not mentions("anything", "")
