import logging

from dealflow.models import EntityKind, HealthSystem, JobStatus
from dealflow.services.research.trigger import ResearchTrigger


class _ExplodingRunner:
    def __init__(self):
        self.calls = []

    async def run_queued(self, max_jobs, job_filter=None):
        self.calls.append((max_jobs, job_filter))
        raise RuntimeError("database went away")


async def test_trigger_runs_exactly_the_entity_job(services, procedure, create_entity):
    other = await create_entity(HealthSystem, name="Untouched Health")
    target = await create_entity(HealthSystem, name="Triggered Health")
    other_job = await services.queue.enqueue(EntityKind.health_system, other.id)
    target_job = await services.queue.enqueue(EntityKind.health_system, target.id)

    services.trigger.fire(EntityKind.health_system, target.id)
    await services.trigger.drain()

    assert (await services.queue.get_job(target_job.id)).status == JobStatus.succeeded
    assert (await services.queue.get_job(other_job.id)).status == JobStatus.queued
    assert [subject.search_name for subject in procedure.calls] == ["Triggered Health"]
    assert services.trigger.pending == 0


async def test_trigger_failures_are_logged_not_raised(caplog):
    runner = _ExplodingRunner()
    trigger = ResearchTrigger(runner)

    with caplog.at_level(logging.ERROR, logger="dealflow.services.research.trigger"):
        task = trigger.fire(EntityKind.company, 7)
        await trigger.drain()

    assert task.exception() is None
    assert runner.calls[0][0] == 1
    assert runner.calls[0][1].entity_id == 7
    assert "Background research run failed for company 7" in caplog.text


async def test_trigger_loses_gracefully_to_an_earlier_claim(services, procedure, create_entity):
    hs = await create_entity(HealthSystem, name="Already Claimed Health")
    await services.queue.enqueue(EntityKind.health_system, hs.id)
    await services.runner.run_queued(5)

    services.trigger.fire(EntityKind.health_system, hs.id)
    await services.trigger.drain()

    assert len(procedure.calls) == 1
