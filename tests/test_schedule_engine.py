import pendulum
import pytest

from cardstudio.describe.provider import DescriptionProvider
from cardstudio.errors import NotFoundError, ScheduleBusyError, ValidationError
from cardstudio.jobs.schedules import ScheduleEngine
from cardstudio.logic.schedule import replace_schedule
from cardstudio.logic.generation import CardGenerator
from cardstudio.models import (
    CardGenerationResult,
    ExecutionStatus,
    Frequency,
    GenerationMetadata,
    GenerationMode,
    OutputFormat,
    Product,
    ScheduleExecution,
    ScheduleStatus,
    SearchType,
)
from cardstudio.render.card import CardRenderer
from cardstudio.sources import YamlProductSource, load_products
from cardstudio.store.records import HistoryStore, ScheduleStore

TZ = "America/Sao_Paulo"
NOW = pendulum.datetime(2024, 5, 14, 10, 0, tz=TZ)


class FakeGenerator:
    def __init__(self, failing_ids=()):
        self.failing_ids = set(failing_ids)
        self.calls = []

    async def generate_cards(self, product, config):
        self.calls.append((product.id, config))
        metadata = GenerationMetadata(generation_time_ms=1, mode=config.mode, template=config.template)
        if product.id in self.failing_ids:
            return CardGenerationResult(success=False, product=product, metadata=metadata, error="render failed")
        return CardGenerationResult(
            success=True,
            product=product,
            metadata=metadata,
            card_urls={OutputFormat.PNG: f"memory://{product.id}.png"},
            description="caption",
        )


class BrokenSource:
    async def search_products(self, criteria):
        raise RuntimeError("affiliate API down")


class DummyEmailProvider:
    def __init__(self):
        self.messages = []

    async def send(self, message):
        self.messages.append(message)


def products(count):
    return [
        Product(id=str(index), name=f"Product {index}", price=10 + index, sales=index, image_url="https://x/p.jpg")
        for index in range(1, count + 1)
    ]


@pytest.fixture()
def make_engine(kv):
    def factory(source=None, generator=None, email=None, clock=lambda: NOW):
        return ScheduleEngine(
            ScheduleStore(kv),
            generator or FakeGenerator(),
            source or YamlProductSource(products(3)),
            HistoryStore(kv, "schedule_executions", ScheduleExecution),
            email=email,
            clock=clock,
        )

    return factory


@pytest.mark.asyncio
async def test_create_and_list(make_engine):
    engine = make_engine()
    schedule = await engine.create_schedule("Daily", frequency=Frequency.DAILY, time="09:00")
    assert schedule.next_run == pendulum.datetime(2024, 5, 15, 9, 0, tz=TZ)
    assert [item.id for item in await engine.list_schedules()] == [schedule.id]
    assert (await engine.get_schedule(schedule.id)).name == "Daily"


@pytest.mark.asyncio
async def test_invalid_update_is_not_persisted(make_engine):
    engine = make_engine()
    schedule = await engine.create_schedule("Weekly", frequency=Frequency.WEEKLY, weekdays=[1])
    with pytest.raises(ValidationError):
        await engine.update_schedule(schedule.id, weekdays=[])
    assert (await engine.get_schedule(schedule.id)).weekdays == (1,)


@pytest.mark.asyncio
async def test_update_timing_recomputes_next_run(make_engine):
    engine = make_engine()
    schedule = await engine.create_schedule("Daily", time="09:00")
    updated = await engine.update_schedule(schedule.id, time="11:00")
    assert updated.next_run == pendulum.datetime(2024, 5, 14, 11, 0, tz=TZ)
    renamed = await engine.update_schedule(schedule.id, name="Renamed")
    assert renamed.next_run == updated.next_run


@pytest.mark.asyncio
async def test_toggle_weekday_and_last_day_kept(make_engine):
    engine = make_engine()
    schedule = await engine.create_schedule("Weekly", frequency=Frequency.WEEKLY, weekdays=[1, 3])
    assert schedule.next_run == pendulum.datetime(2024, 5, 15, 9, 0, tz=TZ)
    toggled = await engine.toggle_weekday(schedule.id, 3)
    assert toggled.weekdays == (1,)
    assert toggled.next_run == pendulum.datetime(2024, 5, 20, 9, 0, tz=TZ)
    assert (await engine.toggle_weekday(schedule.id, 1)).weekdays == (1,)


@pytest.mark.asyncio
async def test_delete_and_unknown_ids(make_engine):
    engine = make_engine()
    schedule = await engine.create_schedule("Gone")
    await engine.delete_schedule(schedule.id)
    with pytest.raises(NotFoundError):
        await engine.get_schedule(schedule.id)
    with pytest.raises(NotFoundError):
        await engine.delete_schedule(schedule.id)
    with pytest.raises(NotFoundError):
        await engine.run_schedule("missing")


@pytest.mark.asyncio
async def test_run_stamps_config_and_records_execution(make_engine):
    generator = FakeGenerator()
    engine = make_engine(generator=generator)
    schedule = await engine.create_schedule("Daily", criteria={"search_type": SearchType.BEST_SELLERS, "limit": 2})
    execution = await engine.run_schedule(schedule.id, NOW)

    assert execution.success
    assert execution.product_count == 2
    assert execution.success_count == 2
    assert [product_id for product_id, _ in generator.calls] == ["3", "2"]
    for _, config in generator.calls:
        assert config.mode is GenerationMode.AUTOMATED
        assert config.schedule_id == schedule.id

    stored = await engine.get_schedule(schedule.id)
    assert stored.status is ScheduleStatus.PENDING
    assert stored.last_run == NOW
    assert stored.next_run == pendulum.datetime(2024, 5, 15, 9, 0, tz=TZ)
    assert [item.id for item in await engine.executions()] == [execution.id]


@pytest.mark.asyncio
async def test_partial_failure_keeps_going(make_engine):
    generator = FakeGenerator(failing_ids={"3"})
    engine = make_engine(generator=generator)
    schedule = await engine.create_schedule("Daily")
    execution = await engine.run_schedule(schedule.id)
    assert execution.success
    assert execution.success_count == 2
    assert [outcome.success for outcome in execution.results] == [False, True, True]
    assert execution.results[0].error == "render failed"
    assert (await engine.get_schedule(schedule.id)).status is ScheduleStatus.PENDING


@pytest.mark.asyncio
async def test_all_products_failing_marks_error(make_engine):
    engine = make_engine(generator=FakeGenerator(failing_ids={"1", "2", "3"}))
    schedule = await engine.create_schedule("Daily")
    execution = await engine.run_schedule(schedule.id)
    assert not execution.success
    assert execution.status is ExecutionStatus.ERROR
    stored = await engine.get_schedule(schedule.id)
    assert stored.status is ScheduleStatus.ERROR
    assert stored.last_error == execution.error


@pytest.mark.asyncio
async def test_zero_products_is_a_failure(make_engine):
    engine = make_engine(source=YamlProductSource([]))
    schedule = await engine.create_schedule("Empty")
    execution = await engine.run_schedule(schedule.id)
    assert not execution.success
    assert execution.error
    assert execution.product_count == 0
    history = await engine.executions()
    assert [item.status for item in history] == [ExecutionStatus.ERROR]
    assert (await engine.get_schedule(schedule.id)).status is ScheduleStatus.ERROR


@pytest.mark.asyncio
async def test_source_failure_recorded(make_engine):
    engine = make_engine(source=BrokenSource())
    schedule = await engine.create_schedule("Broken")
    execution = await engine.run_schedule(schedule.id)
    assert not execution.success
    assert "affiliate API down" in execution.error


@pytest.mark.asyncio
async def test_once_schedule_completes(make_engine):
    engine = make_engine()
    schedule = await engine.create_schedule("Once", frequency=Frequency.ONCE)
    await engine.run_schedule(schedule.id)
    stored = await engine.get_schedule(schedule.id)
    assert stored.status is ScheduleStatus.COMPLETED
    assert stored.next_run is None
    assert await engine.run_due_schedules(NOW.add(days=30)) == []


@pytest.mark.asyncio
async def test_run_due_only_runs_due_schedules(make_engine):
    generator = FakeGenerator()
    engine = make_engine(generator=generator)
    due = await engine.create_schedule("Morning", time="09:00")
    later = await engine.create_schedule("Later", time="09:30")
    executions = await engine.run_due_schedules(pendulum.datetime(2024, 5, 15, 9, 0, 30, tz=TZ))
    assert [execution.schedule_id for execution in executions] == [due.id]
    assert (await engine.get_schedule(later.id)).last_run is None


@pytest.mark.asyncio
async def test_schedule_in_flight_is_not_started_twice(make_engine):
    tick = pendulum.datetime(2024, 5, 15, 9, 0, 30, tz=TZ)
    other_worker = make_engine()
    overlapping = []

    class SlowGenerator(FakeGenerator):
        async def generate_cards(self, product, config):
            if not overlapping:
                overlapping.append(await other_worker.run_due_schedules(tick.add(minutes=1)))
            return await super().generate_cards(product, config)

    engine = make_engine(generator=SlowGenerator())
    schedule = await engine.create_schedule("Morning", time="09:00")
    executions = await engine.run_due_schedules(tick)

    assert [execution.schedule_id for execution in executions] == [schedule.id]
    assert overlapping == [[]]
    assert len(await engine.executions()) == 1
    finished = await engine.get_schedule(schedule.id)
    assert finished.status is ScheduleStatus.PENDING
    assert finished.run_started_at == tick


@pytest.mark.asyncio
async def test_running_schedule_rejects_manual_run(make_engine):
    engine = make_engine()
    schedule = await engine.create_schedule("Morning", time="09:00")
    claimed = replace_schedule(schedule, status=ScheduleStatus.RUNNING, run_started_at=NOW)
    await engine.store.save(claimed)
    with pytest.raises(ScheduleBusyError):
        await engine.run_schedule(schedule.id, NOW.add(minutes=2))
    assert await engine.executions() == []


@pytest.mark.asyncio
async def test_stale_claim_is_recovered(make_engine):
    engine = make_engine()
    schedule = await engine.create_schedule("Morning", time="09:00")
    crashed = replace_schedule(
        schedule, status=ScheduleStatus.RUNNING, run_started_at=NOW, next_run=NOW.subtract(minutes=1)
    )
    await engine.store.save(crashed)
    assert await engine.run_due_schedules(NOW.add(minutes=10)) == []
    executions = await engine.run_due_schedules(NOW.add(hours=1))
    assert [execution.schedule_id for execution in executions] == [schedule.id]
    assert (await engine.get_schedule(schedule.id)).status is ScheduleStatus.PENDING


@pytest.mark.asyncio
async def test_run_due_continues_after_failure(make_engine):
    engine = make_engine(source=BrokenSource())
    await engine.create_schedule("A", time="09:00")
    await engine.create_schedule("B", time="09:00")
    executions = await engine.run_due_schedules(pendulum.datetime(2024, 5, 15, 9, 5, tz=TZ))
    assert len(executions) == 2
    assert not any(execution.success for execution in executions)


@pytest.mark.asyncio
async def test_notification_email_sent(make_engine):
    email = DummyEmailProvider()
    engine = make_engine(email=email)
    schedule = await engine.create_schedule("Notify", notify_email="ops@example.com")
    await engine.run_schedule(schedule.id)
    assert [message.to for message in email.messages] == ["ops@example.com"]
    assert "3/3" in email.messages[0].subject
    assert "Product 3" in email.messages[0].html


@pytest.mark.asyncio
async def test_end_to_end_with_renderer(make_engine, image_loader, blob_store):
    generator = CardGenerator(DescriptionProvider(None), CardRenderer(), image_loader, blob_store)
    engine = make_engine(source=YamlProductSource(load_products()), generator=generator)
    schedule = await engine.create_schedule(
        "Real",
        criteria={"search_type": SearchType.BIGGEST_DISCOUNTS, "limit": 1},
        config={"include_second_variation": False, "output_formats": ["png"], "use_ai": False},
    )
    execution = await engine.run_schedule(schedule.id)
    assert execution.success
    assert execution.results[0].product_id == "17755320019"
    assert len(blob_store.blobs) == 1
