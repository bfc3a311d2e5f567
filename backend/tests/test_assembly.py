from __future__ import annotations

import logging

from proposal_engine.assembly import assemble, assemble_report
from proposal_engine.config import EngineOptions
from proposal_engine.matching import overlapping_pairs


def _template() -> dict[str, object]:
    return {
        "sections": [
            {"key": "context", "label": "Context", "order": 1},
            {"key": "relevance", "label": "Relevance of the project", "order": 2},
            {
                "key": "wp1",
                "label": "Work Package 1",
                "order": 10,
                "subsections": [{"key": "activities", "label": "Activities"}],
            },
            {"key": "wp2", "label": "WP2", "order": 11},
            {"key": "annexes", "label": "Annexes", "order": 20},
        ]
    }


def _records() -> dict[str, object]:
    return {
        "workPackages": [
            {"name": "Needs research", "description": "Mapping local training needs with youth centres."},
            {"name": "Pilot training", "activities": [{"name": "Bootcamp", "leadPartner": "P1"}]},
            {"name": "Dissemination", "deliverables": ["Final conference"]},
        ],
        "partners": [
            {"name": "Green Youth Org", "acronym": "GYO", "country": "IE", "isCoordinator": True},
            {"name": "Digital Academy", "country": "ES"},
        ],
        "budget": [{"item": "Staff", "cost": 12000}],
    }


def _content() -> dict[str, str]:
    return {
        "context": "The region faces high youth unemployment and few training options.",
        "Relevance of the project": "The project answers the call priority on digital skills for young people.",
        "activities": "Needs workshops and mentoring sessions for 120 participants.",
        "work_package_3": "Dissemination through local media, school visits and a closing event.",
        "sustainability": "Partners will keep the training materials online for five years.",
        "summary": "A two-year project training young people in practical digital skills.",
        "budget": "The budget is split across staff, travel and equipment costs.",
    }


def test_full_assembly_orders_sections_and_synthesizes_anchors() -> None:
    report = assemble_report(_template(), _content(), _records())

    assert [section.id for section in report.sections] == [
        "anchor/summary",
        "context",
        "relevance",
        "anchor/wp_overview",
        "wp1",
        "wp1/activities",
        "wp2",
        "work_package_3",
        "sustainability",
        "anchor/partners",
        "anchor/partner_profiles",
        "anchor/budget",
    ]
    assert report.unmatched_keys == ["sustainability"]
    assert set(report.synthesized_anchors) == {
        "anchor/summary",
        "anchor/partners",
        "anchor/partner_profiles",
        "anchor/budget",
        "anchor/wp_overview",
    }

    by_id = {section.id: section for section in report.sections}
    assert by_id["anchor/summary"].type == "summary"
    assert by_id["anchor/budget"].is_structural
    assert not by_id["context"].is_structural
    assert by_id["anchor/budget"].content == _content()["budget"]
    assert by_id["anchor/partners"].title == "Participating Organisations"
    assert by_id["wp1/activities"].parent_id == "wp1"
    assert by_id["wp1/activities"].level == 2
    assert by_id["relevance"].content == _content()["Relevance of the project"]


def test_every_work_package_gets_exactly_one_slot() -> None:
    sections = assemble(_template(), _content(), _records())

    work_packages = [section for section in sections if section.type == "work_package"]
    assert [section.wp_idx for section in work_packages] == [0, 1, 2]
    assert [section.title for section in work_packages] == ["Needs research", "Pilot training", "Dissemination"]
    assert work_packages[0].content == "Mapping local training needs with youth centres."
    assert all(section.wp_idx is None for section in sections if section.type != "work_package")


def test_template_wp_slots_are_extended_from_records() -> None:
    template = [{"key": "wp1", "label": "WP1"}, {"key": "wp2", "label": "WP2"}]
    records = {"work_packages": [{"name": "Research"}, {"name": "Pilot"}, {"name": "Outreach and dissemination"}]}

    sections = assemble(template, {}, records)

    assert [section.type for section in sections] == ["wp_list", "work_package", "work_package", "work_package"]
    assert sections[3].title == "Outreach and dissemination"
    assert sections[3].id == "work_package_3"


def test_overview_is_placed_once_before_the_first_work_package() -> None:
    sections = assemble(_template(), _content(), _records())

    overview_positions = [index for index, section in enumerate(sections) if section.type == "wp_list"]
    first_wp = next(index for index, section in enumerate(sections) if section.type == "work_package")
    assert overview_positions == [first_wp - 1]
    assert sections[first_wp - 1].title == "Work packages overview"


def test_template_overview_section_is_reused() -> None:
    template = [
        {"key": "wp1", "label": "WP1"},
        {"key": "wp_overview", "label": "Work packages overview"},
    ]
    report = assemble_report(template, {}, {"work_packages": [{"name": "Research"}]})

    assert [section.id for section in report.sections] == ["wp_overview", "wp1"]
    assert report.sections[0].type == "wp_list"
    assert "anchor/wp_overview" not in report.synthesized_anchors


def test_case_variants_of_a_key_collapse_into_one_section() -> None:
    content = {
        "Relevance": "The project is highly relevant to the priorities of the call",
        "relevance": "The project is highly relevant to the priorities of the call and the region.",
    }
    sections = assemble(None, content, None)

    assert len(sections) == 1
    assert sections[0].title == "Relevance"
    assert sections[0].content == content["relevance"]


def test_orphans_without_template_follow_canonical_key_order() -> None:
    content = {
        "target_groups": "Young people aged 18 to 29 who are not in education.",
        "community_engagement": "Local associations co-design every workshop with us.",
        "sustainability": "Materials stay online for five years after the project.",
        "gender_equality": "Half of the trainer positions are reserved for women.",
        "dissemination_plan": "Results are shared through partner newsletters and events.",
    }
    report = assemble_report(None, content, None)

    assert [section.title for section in report.sections] == [
        "Community engagement",
        "Dissemination plan",
        "Gender equality",
        "Sustainability",
        "Target groups",
    ]
    assert all(section.level == 1 and section.parent_id is None for section in report.sections)
    assert sorted(report.unmatched_keys) == sorted(content)


def test_assembly_is_idempotent_and_independent_of_key_order() -> None:
    content = _content()
    reversed_content = dict(reversed(list(content.items())))

    first = assemble(_template(), content, _records())
    second = assemble(_template(), content, _records())
    permuted = assemble(_template(), reversed_content, _records())

    assert [section.model_dump() for section in first] == [section.model_dump() for section in second]
    assert [section.model_dump() for section in first] == [section.model_dump() for section in permuted]


def test_duplicated_text_survives_only_in_the_longer_section() -> None:
    base = "Participants gain certified digital skills and confidence."
    content = {"impact": base, "outcomes": base + " Employers report better job readiness."}

    sections = assemble(None, content, None)

    assert [section.id for section in sections] == ["outcomes"]
    assert overlapping_pairs((section.id, section.content) for section in sections) == []


def test_text_appended_under_two_aliases_is_kept_in_one_section() -> None:
    shared = "Partner youth centres confirmed these findings in joint workshops held during preparation."
    template = [{"key": "relevance", "label": "Relevance"}, {"key": "needs_analysis", "label": "Needs analysis"}]
    content = {
        "relevance": "Digital skills gaps are widest among rural young people.",
        "relevance_details": shared,
        "needs_analysis": "A survey of 300 young people mapped their training needs.",
        "needs_analysis_extra": shared,
    }

    sections = assemble(template, content, None)

    by_id = {section.id: section for section in sections}
    assert [section.id for section in sections if shared in (section.content or "")] == ["relevance"]
    assert by_id["needs_analysis"].content == content["needs_analysis"]
    assert overlapping_pairs((section.id, section.content) for section in sections) == []


def test_paragraphs_sharing_an_opening_keep_only_the_longer_copy() -> None:
    opening = "Mentoring circles meet every fortnight"
    content = {
        "impact": f"{opening}.",
        "methodology": f"Sessions are blended.\n\n{opening} in each partner town with local trainers.",
    }

    sections = assemble(None, content, None)

    assert [section.id for section in sections] == ["methodology"]
    assert sections[0].content == content["methodology"]


def test_unknown_work_package_key_gets_its_own_slot_despite_a_generic_heading() -> None:
    text = "Dissemination through local media, school visits and a closing event."
    template = [{"label": "Work package"}, {"label": "Work Package 1"}]

    report = assemble_report(template, {"work_package_3": text}, None)

    by_idx = {section.wp_idx: section for section in report.sections if section.type == "work_package"}
    assert sorted(by_idx) == [0, 2]
    assert by_idx[2].content == text
    assert [section.id for section in report.sections if section.content == text] == [by_idx[2].id]
    assert report.unmatched_keys == ["work_package_3"]


def test_work_package_ten_does_not_land_in_work_package_one() -> None:
    text = "Exploitation of results through a follow-up funding application."
    template = [{"key": "wp1", "label": "Work Package 1"}]

    sections = assemble(template, {"work_package_10": text}, None)

    by_idx = {section.wp_idx: section for section in sections if section.type == "work_package"}
    assert sorted(by_idx) == [0, 9]
    assert by_idx[0].content is None
    assert by_idx[9].content == text
    assert by_idx[9].title == "Work Package 10"


def test_filled_template_summary_keeps_its_text_and_the_record_summary_gets_an_anchor() -> None:
    template = [{"key": "summary_section", "label": "Project summary"}]
    own_text = "Our consortium wrote this summary for the application form field."
    records = {"summary": "A two-year project training young people in practical digital skills."}

    report = assemble_report(template, {"summary_section": own_text}, records)

    by_id = {section.id: section for section in report.sections}
    assert set(by_id) == {"anchor/summary", "summary_section"}
    assert report.sections[0].id == "anchor/summary"
    assert by_id["anchor/summary"].type == "summary"
    assert by_id["anchor/summary"].content == records["summary"]
    assert by_id["summary_section"].type == "narrative"
    assert by_id["summary_section"].content == own_text
    assert report.synthesized_anchors == ["anchor/summary"]


def test_empty_narratives_are_dropped_but_structural_sections_stay() -> None:
    template = [
        {"key": "context", "label": "Context"},
        {"key": "risks", "label": "Risks", "type": "risk"},
        {"key": "short", "label": "Short"},
    ]
    sections = assemble(template, {"short": "Too short."}, {"risks": [{"risk": "Delays"}]})

    assert [section.id for section in sections] == ["risks"]
    assert sections[0].type == "risk"


def test_parents_stay_when_a_child_has_content() -> None:
    template = [
        {
            "key": "design",
            "label": "Project design",
            "subsections": [{"key": "methods", "label": "Methods"}],
        }
    ]
    sections = assemble(template, {"methods": "Blended learning with weekly online mentoring."}, None)

    assert [section.id for section in sections] == ["design", "design/methods"]
    assert sections[0].content is None


def test_typed_template_node_hosts_the_budget() -> None:
    template = [{"key": "financial_plan", "label": "Financial plan", "type": "budget"}]
    report = assemble_report(template, {}, {"budget": [{"item": "Staff", "cost": 100}]})

    assert [section.type for section in report.sections] == ["budget"]
    assert report.sections[0].id == "financial_plan"
    assert report.synthesized_anchors == []


def test_summary_attaches_to_a_template_summary_section() -> None:
    template = [{"key": "summary_section", "label": "Project summary"}]
    report = assemble_report(template, {"abstract": "An abstract that is long enough to be kept."}, None)

    assert [section.id for section in report.sections] == ["summary_section"]
    assert report.sections[0].type == "summary"
    assert report.sections[0].content == "An abstract that is long enough to be kept."


def test_layout_sequence_moves_sections() -> None:
    sections = assemble(_template(), _content(), _records(), {"sequence": ["sustainability"]})

    ids = [section.id for section in sections]
    assert ids.index("sustainability") < ids.index("context")


def test_orphan_work_package_content_creates_a_slot() -> None:
    report = assemble_report(None, {"WP 2": "Training of trainers in every partner country."}, None)

    assert [(section.id, section.type, section.wp_idx) for section in report.sections] == [
        ("anchor/wp_overview", "wp_list", None),
        ("work_package_2", "work_package", 1),
    ]


def test_malformed_inputs_degrade_to_an_empty_result() -> None:
    assert assemble("not a template", ["not", "a", "bag"], 42, {"sequence": 5}) == []
    assert assemble() == []


def test_bad_records_are_dropped_not_fatal() -> None:
    records = {"work_packages": [{"name": "Research", "activities": "not a list"}, "junk"]}

    sections = assemble(None, {}, records)

    assert [section.title for section in sections if section.type == "work_package"] == ["Research"]


def test_options_control_the_content_threshold() -> None:
    content = {"notes": "Short but real."}

    assert assemble(None, content, None) == []
    sections = assemble(None, content, None, options=EngineOptions(min_content_chars=5))
    assert [section.id for section in sections] == ["notes"]


def test_unmatched_keys_are_logged(caplog) -> None:
    with caplog.at_level(logging.WARNING, logger="proposal_engine.assembly"):
        assemble(None, {"gender_equality": "Half of the trainer positions are reserved for women."}, None)

    events = [record for record in caplog.records if getattr(record, "event", None) == "content_key_unmatched"]
    assert [record.content_key for record in events] == ["gender_equality"]
