"""
Engine loop: drains the input queue into a world, one fixed-size step at a time.

Key responsibilities:
- Serialize steps per engine (an ``asyncio.Lock`` around ``step()``)
- Apply each queued input exactly once, in number order, using the
  ``processed_input_number`` watermark. The world record carries the same
  watermark and is saved together with the command effects, so a step that
  fails after the world save never replays those inputs
- Tick the world, save it, persist the engine record, write input results
- Re-schedule itself through a ``Scheduler`` while the engine is running.
  Each start opens a new step chain; steps left over from an earlier chain
  are dropped when they fire

A step has two async boundaries: loading the engine/world at the start and
saving at the end. Everything in between is synchronous world mutation.
"""

import asyncio
import random
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol, Set

from .config import Config
from .errors import EngineNotFoundError, WorldNotFoundError
from .game import Game
from .inputs import InputQueue
from .logging_utils import (
    LOG_TAG_DETERMINISTIC,
    LOG_TAG_ERROR,
    LOG_TAG_INFO,
    LOG_TAG_SUCCESS,
    env_flag,
    log_deterministic,
    log_error,
    log_info,
    log_success,
)
from .persistence import ENGINES, DocumentStore
from .schemas import EngineState, InputRecord, InputResult
from .world import World

StepCallback = Callable[[], Awaitable[Any]]


class Scheduler(Protocol):
    """Host primitive that runs ``callback`` once after ``delay_ms`` milliseconds."""

    def run_after(self, delay_ms: float, callback: StepCallback) -> None:
        ...


class AsyncioScheduler:
    """Scheduler backed by ``loop.call_later``; each callback runs as its own task.

    Exceptions raised by scheduled steps are collected in ``errors`` instead of
    being lost with the task.
    """

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        self._loop = loop
        self._handles: Set[asyncio.TimerHandle] = set()
        self.tasks: Set[asyncio.Task] = set()
        self.errors: List[BaseException] = []

    def run_after(self, delay_ms: float, callback: StepCallback) -> None:
        loop = self._loop or asyncio.get_running_loop()
        handle: Optional[asyncio.TimerHandle] = None

        def _spawn() -> None:
            self._handles.discard(handle)
            task = loop.create_task(callback())
            self.tasks.add(task)
            task.add_done_callback(self._finished)

        handle = loop.call_later(max(delay_ms, 0) / 1000.0, _spawn)
        self._handles.add(handle)

    def _finished(self, task: asyncio.Task) -> None:
        self.tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            self.errors.append(task.exception())

    def pending(self) -> int:
        return len(self._handles) + len(self.tasks)

    def cancel(self) -> None:
        for handle in list(self._handles):
            handle.cancel()
        self._handles.clear()
        for task in list(self.tasks):
            task.cancel()


@dataclass(slots=True)
class StepResult:
    """Outcome of one ``Engine.step()`` call."""

    skipped: bool = False
    now: Optional[float] = None
    running: bool = False
    inputs_processed: int = 0
    results: List[InputResult] = field(default_factory=list)
    ended_conversations: List[str] = field(default_factory=list)
    processed_input_number: Optional[int] = None


class Engine:
    """
    Drives one world through the input queue.

    Fully injectable: storage, queue, scheduler, clock and random source are
    parameters, so tests can run steps by hand with a fake clock.
    """

    def __init__(
        self,
        store: DocumentStore,
        engine_id: str,
        world_id: str,
        *,
        queue: Optional[InputQueue] = None,
        scheduler: Optional[Scheduler] = None,
        clock: Callable[[], float] = time.time,
        tick_interval_ms: Optional[int] = None,
        max_inputs_per_step: Optional[int] = None,
        tick_duration: Optional[float] = None,
        rng: Optional[random.Random] = None,
        verbose: Optional[bool] = None,
        step_listeners: Optional[List[Callable[[StepResult, World], None]]] = None,
    ):
        """Initialize an engine handle.

        Args:
            store: Document store holding engine, world and input records
            engine_id: Engine record id (also the input queue scope)
            world_id: World driven by this engine
            queue: Input queue (defaults to one over ``store``)
            scheduler: Re-runs ``step()`` while running; None means steps are driven manually
            clock: Returns the current time in float seconds
            tick_interval_ms: Delay before the next scheduled step
            max_inputs_per_step: Upper bound on inputs applied in one step
            tick_duration: Simulated seconds one world tick moves entities
            rng: Random source handed to the world (agent spawn positions)
            verbose: Log step start/finish and every command (TRUSTVILLE_VERBOSE)
            step_listeners: Callables invoked with (result, world) after each step;
                failures are logged and ignored
        """
        self.store = store
        self.engine_id = engine_id
        self.world_id = world_id
        self.queue = queue or InputQueue(store)
        self.scheduler = scheduler
        self.clock = clock
        self.tick_interval_ms = tick_interval_ms or Config.TICK_INTERVAL_MS
        self.max_inputs_per_step = max_inputs_per_step or Config.MAX_INPUTS_PER_STEP
        self.tick_duration = tick_duration or Config.TICK_DURATION_SECONDS
        self.rng = rng or random.Random()
        self.verbose = env_flag("TRUSTVILLE_VERBOSE") if verbose is None else verbose
        self.step_listeners = step_listeners or []

        # Steps for this engine never overlap.
        self._lock = asyncio.Lock()
        # Bumped by start/stop; a scheduled step only runs for the current value.
        self._loop_token = 0

    @classmethod
    async def create(
        cls,
        store: DocumentStore,
        engine_id: str,
        world_id: Optional[str] = None,
        **kwargs: Any,
    ) -> "Engine":
        """Create a stopped engine record and an empty world, return the engine."""
        world_id = world_id or engine_id
        await store.upsert(
            ENGINES,
            engine_id,
            engine_id,
            EngineState(id=engine_id, world_id=world_id).model_dump(mode="json"),
        )
        await World.create(store, world_id)
        return cls(store, engine_id, world_id, **kwargs)

    # ------------------------------------------------------------------
    # Records
    # ------------------------------------------------------------------

    async def load_state(self) -> EngineState:
        """Load the engine record.

        Raises:
            EngineNotFoundError: If the record does not exist
        """
        document = await self.store.get(ENGINES, self.engine_id, self.engine_id)
        if document is None:
            raise EngineNotFoundError(engine_id=self.engine_id)
        return EngineState.model_validate(document)

    async def _save_state(self, state: EngineState) -> None:
        await self.store.upsert(ENGINES, self.engine_id, self.engine_id, state.model_dump(mode="json"))

    async def load_world(self, state: Optional[EngineState] = None) -> World:
        world_id = state.world_id if state is not None else self.world_id
        try:
            return await World.load(self.store, world_id, rng=self.rng, tick_duration=self.tick_duration)
        except WorldNotFoundError:
            raise WorldNotFoundError(world_id=world_id, engine_id=self.engine_id) from None

    # ------------------------------------------------------------------
    # Step
    # ------------------------------------------------------------------

    async def step(self) -> StepResult:
        """Run one step: apply pending inputs, tick the world, persist.

        Calling it by hand never schedules another step; only the chain
        opened by ``start()`` re-schedules itself.

        Returns:
            StepResult; ``skipped`` when the engine is not running

        Raises:
            EngineNotFoundError: Engine record missing (nothing is consumed)
            WorldNotFoundError: World record missing (nothing is consumed)
        """
        return await self._step()

    async def _step(self, token: Optional[int] = None) -> StepResult:
        async with self._lock:
            if token is not None and token != self._loop_token:
                # Left over from a chain that stop() or a later start() replaced.
                return StepResult(skipped=True, now=self.clock())
            try:
                result = await self._run_step()
            except (EngineNotFoundError, WorldNotFoundError) as exc:
                log_error(f"{LOG_TAG_ERROR} Step aborted for engine {self.engine_id}: {exc}")
                raise

            # Keep the chain going while running; "stop" only prevents this.
            if token is not None and result.running:
                self._schedule_next()
        return result

    async def _run_step(self) -> StepResult:
        now = self.clock()

        # 1. Load the authoritative engine record. A missing record is fatal:
        # skipping silently would let the watermark drift from the queue.
        state = await self.load_state()

        # 2. A stopped engine does nothing, and is not re-scheduled.
        if not state.running:
            return StepResult(skipped=True, now=now, running=False,
                              processed_input_number=state.processed_input_number)

        if self.verbose:
            log_deterministic(f"{LOG_TAG_DETERMINISTIC} Step {self.engine_id} at {now:.3f}")

        # 3. Load the world snapshot this step owns until save().
        world = await self.load_world(state)
        game = Game(state, verbose=self.verbose)

        await self._catch_up_watermark(state, world)

        # 4. Apply inputs after the watermark, in order, each with its own result.
        # Command errors are recorded on the input and never stop the batch.
        inputs = await self.queue.pending(self.engine_id, state.processed_input_number, self.max_inputs_per_step)
        applied: List[tuple[InputRecord, InputResult]] = []
        for record in inputs:
            outcome = game.process_input(world, record.name, record.args, now)
            applied.append((record, outcome))
            state.processed_input_number = record.number

        # 5. Advance the simulation by one tick.
        ended = world.tick(now)
        for conversation_id in ended:
            log_info(f"{LOG_TAG_INFO} Conversation {conversation_id} ended")

        # 6. Save the world (outbox first, then every live entity). The world
        # record goes last and carries the watermark of the inputs applied above.
        world.processed_input_number = state.processed_input_number
        await world.save()

        # 7. Persist engine timing and the new watermark.
        state.last_step_ts = state.current_time
        state.current_time = now
        await self._save_state(state)

        # 8. Write each input's result back for polling callers.
        for record, outcome in applied:
            await self.queue.record_result(record, outcome)

        result = StepResult(
            skipped=False,
            now=now,
            running=state.running,
            inputs_processed=len(applied),
            results=[outcome for _, outcome in applied],
            ended_conversations=ended,
            processed_input_number=state.processed_input_number,
        )

        if self.verbose:
            log_success(
                f"{LOG_TAG_SUCCESS} Step done: {len(applied)} inputs, "
                f"{len(world.participants())} entities, {len(world.conversations)} conversations"
            )

        # 9. Optional observers.
        for listener in self.step_listeners:
            try:
                listener(result, world)
            except Exception as exc:  # pragma: no cover - diagnostic hook
                log_error(f"{LOG_TAG_ERROR} Step listener failed: {exc}")

        return result

    async def _catch_up_watermark(self, state: EngineState, world: World) -> None:
        """Adopt the world's watermark when it is ahead of the engine record.

        That happens when a step saved the world but failed before saving the
        engine record. The inputs in between are already applied; their
        results were never written, so they get an error result instead of
        staying unprocessed forever.
        """
        floor = -1 if state.processed_input_number is None else state.processed_input_number
        if world.processed_input_number is None or world.processed_input_number <= floor:
            return

        lost = await self.queue.pending(self.engine_id, state.processed_input_number, world.processed_input_number - floor)
        for record in lost:
            if record.result is None:
                await self.queue.record_result(
                    record, InputResult.error("Applied by a step that failed before recording its result")
                )
        log_error(
            f"{LOG_TAG_ERROR} Engine {self.engine_id} resumed from world watermark "
            f"#{world.processed_input_number} (engine record had #{state.processed_input_number})"
        )
        state.processed_input_number = world.processed_input_number

    def _schedule_next(self, delay_ms: Optional[float] = None) -> None:
        if self.scheduler is None:
            return
        token = self._loop_token
        self.scheduler.run_after(
            self.tick_interval_ms if delay_ms is None else delay_ms,
            lambda: self._step(token),
        )

    async def run_steps(self, count: int) -> List[StepResult]:
        """Drive ``count`` steps back to back without a scheduler."""
        return [await self.step() for _ in range(count)]

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> EngineState:
        """Mark the engine running and schedule the first step."""
        async with self._lock:
            state = await self.load_state()
            if state.running:
                return state
            state.running = True
            await self._save_state(state)
            self._loop_token += 1

        log_success(f"{LOG_TAG_SUCCESS} Engine {self.engine_id} started")
        self._schedule_next(0)
        return state

    async def stop(self) -> EngineState:
        """Stop scheduling further steps. An in-flight step still completes."""
        async with self._lock:
            state = await self.load_state()
            state.running = False
            await self._save_state(state)
            self._loop_token += 1

        log_info(f"{LOG_TAG_INFO} Engine {self.engine_id} stopped")
        return state

    async def restart(self) -> EngineState:
        """Wipe the world and begin a new generation.

        The input watermark is kept, so commands from the previous generation
        are never replayed into the new one.
        """
        async with self._lock:
            state = await self.load_state()
            world = await self.load_world(state)
            now = self.clock()

            world.restart(now)
            await world.save()

            state.generation_number += 1
            state.current_time = None
            state.last_step_ts = None
            await self._save_state(state)

        log_info(f"{LOG_TAG_INFO} Engine {self.engine_id} restarted (generation {state.generation_number})")
        return state

    async def status(self) -> Dict[str, Any]:
        state = await self.load_state()
        return {
            "engine_id": self.engine_id,
            "world_id": state.world_id,
            "running": state.running,
            "current_time": state.current_time,
            "generation_number": state.generation_number,
            "processed_input_number": state.processed_input_number,
            "pending_inputs": await self.queue.count_pending(self.engine_id, state.processed_input_number),
        }

    # ------------------------------------------------------------------
    # Inputs
    # ------------------------------------------------------------------

    async def send_input(self, name: str, args: Optional[Dict[str, Any]] = None) -> InputRecord:
        """Enqueue a command; it is applied by a later step."""
        return await self.queue.append(self.engine_id, name, args, received_at=self.clock())

    async def input_status(self, number: int) -> Optional[Dict[str, Any]]:
        return await self.queue.status(self.engine_id, number)
