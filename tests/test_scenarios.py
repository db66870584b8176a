"""End-to-end enrollment scenarios on the in-memory backend."""

from datetime import timedelta

import pytest


@pytest.mark.asyncio
async def test_wait_then_tag_then_end(engine, repo, clock, make_workflow, make_contact):
    await repo.save_workflow(
        make_workflow(
            [
                {"id": "wait", "type": "wait", "config": {"duration": 1, "unit": "days"}},
                {"id": "tag", "type": "add_tag", "config": {"tag_ids": ["nurtured"]}},
                {"id": "end", "type": "end"},
            ]
        )
    )
    await repo.save_contact(make_contact())
    t0 = clock.now

    enrollment = await engine.enroll("wf-1", "contact-1")
    assert enrollment.next_step_at == t0 + timedelta(days=1)
    assert enrollment.status == "active"
    assert enrollment.current_step_id == "wait"

    clock.advance(days=1)
    assert await engine.process_step(enrollment.id)
    after_wait = await repo.get_enrollment(enrollment.id)
    assert after_wait.status == "active"
    assert after_wait.current_step_id == "tag"
    assert after_wait.next_step_at == clock.now + timedelta(seconds=1)

    clock.advance(seconds=1)
    assert await engine.process_step(enrollment.id)
    after_tag = await repo.get_enrollment(enrollment.id)
    assert "nurtured" in (await repo.get_contact("contact-1")).tags
    assert after_tag.status == "active"
    assert after_tag.current_step_id == "end"

    clock.advance(seconds=1)
    assert await engine.process_step(enrollment.id)
    done = await repo.get_enrollment(enrollment.id)
    assert done.status == "completed"
    assert done.completed_at == clock.now
    assert done.next_step_at is None
    assert (await repo.get_workflow("wf-1")).completed_count == 1
    assert [h.step_type for h in done.step_history] == ["wait", "add_tag", "end"]


@pytest.mark.asyncio
async def test_condition_routes_to_no_branch(engine, repo, make_workflow, make_contact):
    await repo.save_workflow(
        make_workflow(
            [
                {
                    "id": "is_buyer",
                    "type": "condition",
                    "config": {
                        "conditions": [{"field": "type", "operator": "equals", "value": "buyer"}]
                    },
                    "branches": [
                        {"id": "yes", "next_step_id": "buyer_tag"},
                        {"id": "no", "next_step_id": "seller_tag"},
                    ],
                },
                {"id": "buyer_tag", "type": "add_tag", "config": {"tag_ids": ["buyer"]}},
                {"id": "seller_tag", "type": "add_tag", "config": {"tag_ids": ["seller"]}},
            ]
        )
    )
    await repo.save_contact(make_contact(type="seller"))
    enrollment = await engine.enroll("wf-1", "contact-1")

    await engine.process_step(enrollment.id)
    routed = await repo.get_enrollment(enrollment.id)
    assert routed.step_history[0].branch_taken == "no"
    assert routed.current_step_id == "seller_tag"

    await engine.process_step(enrollment.id)
    assert (await repo.get_enrollment(enrollment.id)).status == "completed"
    assert (await repo.get_contact("contact-1")).tags == ["lead", "seller"]


@pytest.mark.asyncio
async def test_unmapped_branch_on_last_step_terminates(engine, repo, make_workflow, make_contact):
    await repo.save_workflow(
        make_workflow(
            [
                {
                    "id": "is_buyer",
                    "type": "condition",
                    "config": {
                        "conditions": [{"field": "type", "operator": "equals", "value": "buyer"}]
                    },
                    "branches": [{"id": "yes", "next_step_id": "is_buyer"}],
                }
            ]
        )
    )
    await repo.save_contact(make_contact(type="seller"))
    enrollment = await engine.enroll("wf-1", "contact-1")

    await engine.process_step(enrollment.id)
    assert (await repo.get_enrollment(enrollment.id)).status == "completed"


@pytest.mark.asyncio
async def test_create_deal_twice_appends(engine, repo, make_workflow, make_contact):
    deal_config = {"pipeline_id": "pipe-1", "stage_id": "stage-new", "title": "Listing"}
    await repo.save_workflow(
        make_workflow(
            [
                {"id": "deal_a", "type": "create_deal", "config": deal_config},
                {"id": "deal_b", "type": "create_deal", "config": deal_config},
            ]
        )
    )
    await repo.save_contact(make_contact())
    enrollment = await engine.enroll("wf-1", "contact-1")

    await engine.process_step(enrollment.id)
    await engine.process_step(enrollment.id)

    positions = sorted(d.position for d in repo.deals.values())
    assert positions == [0, 1]


@pytest.mark.asyncio
async def test_failed_email_still_advances(engine, repo, delivery, make_workflow, make_contact):
    await repo.save_workflow(
        make_workflow(
            [
                {"id": "email", "type": "send_email", "config": {"subject": "Hi"}},
                {"id": "tag", "type": "add_tag", "config": {"tag_ids": ["emailed"]}},
            ]
        )
    )
    await repo.save_contact(make_contact(email=None))
    enrollment = await engine.enroll("wf-1", "contact-1")

    assert await engine.process_step(enrollment.id) is True

    stored = await repo.get_enrollment(enrollment.id)
    entry = stored.step_history[0]
    assert entry.status == "failed"
    assert entry.error == "Contact does not have an email address"
    assert stored.status == "active"
    assert stored.current_step_id == "tag"
    assert delivery.emails == []


@pytest.mark.asyncio
async def test_split_branches_and_history_grows(engine, repo, clock, make_workflow, make_contact):
    await repo.save_workflow(
        make_workflow(
            [
                {
                    "id": "ab",
                    "type": "split",
                    "config": {
                        "split_type": "percentage",
                        "variants": [
                            {"id": "a", "percentage": 50},
                            {"id": "b", "percentage": 50},
                        ],
                    },
                    "branches": [
                        {"id": "a", "next_step_id": "wait_a"},
                        {"id": "b", "next_step_id": "wait_b"},
                    ],
                },
                {"id": "wait_a", "type": "wait", "config": {"duration": 2, "unit": "hours"}, "next_step_id": "end"},
                {"id": "wait_b", "type": "wait", "config": {"duration": 3, "unit": "hours"}},
                {"id": "end", "type": "end"},
            ]
        )
    )
    await repo.save_contact(make_contact())
    enrollment = await engine.enroll("wf-1", "contact-1")

    previous_due = enrollment.next_step_at
    for expected_length in (1, 2, 3):
        clock.advance(hours=4)
        assert await engine.process_step(enrollment.id)
        stored = await repo.get_enrollment(enrollment.id)
        assert len(stored.step_history) == expected_length
        if stored.next_step_at is not None:
            assert stored.next_step_at >= previous_due
            previous_due = stored.next_step_at

    assert stored.status == "completed"
    assert stored.step_history[0].branch_taken in {"a", "b"}
    assert stored.step_history[1].step_id == f"wait_{stored.step_history[0].branch_taken}"
