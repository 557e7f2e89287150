"""
Workspace state controller.

One instance owns the in-memory workspace of the signed-in user. UI code reads
``state`` (or a snapshot through ``subscribe``) and calls the mutators below.

Mutators are optimistic: memory changes first, persistence follows. Failed writes are
rolled back and reported through the single ``error`` slot. The synchronous mutators
(create, update, toggle, move and the block operations) schedule their writes as
background tasks on the running loop; ``drain()`` waits for them. Deletes are confirmed
remotely before anything leaves memory.

Every identity change bumps a session epoch. Rollbacks and late load results from an
earlier epoch are dropped so one user's data never leaks into another user's state.
"""

import asyncio
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Tuple

from ..domain import blocks as block_ops
from ..domain import ledger, milestones, search, tree
from ..domain.defaults import default_finance_data, default_health_data, default_milestones
from ..errors import AuthError, DocumentTreeError, LoadTimeoutError, NotAuthenticatedError, WorkspaceError
from ..schemas.calendar import EVENT_UPDATABLE_FIELDS, CalendarEvent
from ..schemas.finance import FINANCE_SECTIONS, FinanceData, Transaction, Wallet
from ..schemas.health import HealthData, HealthProtocol, HealthSettings, QuitHabit
from ..schemas.pages import PAGE_UPDATABLE_FIELDS, Block, Page
from ..schemas.tasks import TASK_UPDATABLE_FIELDS, DailyTask
from ..schemas.workspace import Section, WorkspaceState, WorkspaceSummary
from ..services.bundle import WorkspaceServices
from ..session.auth import AuthEvent, AuthService, Session
from ..utils.ids import generate_id
from ..utils.timestamps import now_ms
from .write_queue import WriteQueue

logger = logging.getLogger(__name__)

AUTH_FAILED_MESSAGE = "Authentication failed. Please sign in again."
TIMEOUT_MESSAGE = "Loading timed out. Please try again."
SECTIONS = ("pages", "daily-tasks", "calendar", "finance", "health-lab")

Listener = Callable[[WorkspaceState], None]


class LoadStatus(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    CLEARED = "cleared"
    READY = "ready"
    ERRORED = "errored"


def _empty_state() -> WorkspaceState:
    return WorkspaceState(finance_data=default_finance_data(), health_data=default_health_data())


class WorkspaceController:
    def __init__(self, auth: AuthService, services: WorkspaceServices, *, load_timeout: float = 8.0) -> None:
        self._auth = auth
        self._services = services
        self._load_timeout = load_timeout
        self.state = _empty_state()
        self.status = LoadStatus.IDLE
        self.error: Optional[str] = None
        self.user_id: Optional[str] = None
        self._generation = 0
        self._epoch = 0
        self._load_task: Optional["asyncio.Task[bool]"] = None
        self._pending: Set["asyncio.Task[Any]"] = set()
        self._listeners: Set[Listener] = set()
        self._writes = WriteQueue()
        self._disposed = False
        self._unsubscribe_auth = auth.on_auth_state_change(self._on_auth_event)

    # ------------------------------------------------------------------
    # notifications and background work

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.add(listener)

        def unsubscribe() -> None:
            self._listeners.discard(listener)

        return unsubscribe

    def snapshot(self) -> WorkspaceState:
        return self.state.model_copy(deep=True)

    def _notify(self) -> None:
        if not self._listeners:
            return
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("Workspace listener failed")

    def _spawn(self, coro: Awaitable[Any]) -> "asyncio.Task[Any]":
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            coro.close()
            raise WorkspaceError("Workspace mutations need a running event loop")
        task = loop.create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def drain(self) -> None:
        """Wait until every scheduled write (and any write it scheduled) has settled."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    @property
    def pending_writes(self) -> int:
        return len(self._pending)

    def clear_error(self) -> None:
        self.error = None
        self._notify()

    def _fail(self, message: str, epoch: int, rollback: Optional[Callable[[], None]] = None) -> None:
        if epoch != self._epoch:
            logger.warning("Dropping rollback from a previous session: %s", message)
            return
        if rollback is not None:
            rollback()
        self.error = message
        logger.error(message)
        self._notify()

    def _require_user(self) -> str:
        if self.user_id is None:
            raise NotAuthenticatedError()
        return self.user_id

    def _superseded(self, epoch: int, action: str) -> bool:
        # Checked right before each store call: services scope rows to whoever is
        # signed in when the call starts, which may no longer be the author.
        if epoch == self._epoch:
            return False
        logger.warning("Skipping %s queued before a session change", action)
        return True

    # ------------------------------------------------------------------
    # session lifecycle

    def _on_auth_event(self, event: AuthEvent, session: Optional[Session]) -> None:
        if self._disposed:
            return
        if event == AuthEvent.SIGNED_OUT:
            self.clear()
            return
        if session is None:
            # Refresh in flight; the identity has not changed.
            return
        if session.user.id == self.user_id:
            return
        self.clear()
        try:
            self._spawn(self.load_for_user(session.user.id))
        except WorkspaceError:
            logger.warning("Signed in as %s without a running loop; load deferred", session.user.id)

    def clear(self) -> None:
        """Forget everything belonging to the current user."""
        self._epoch += 1
        self._generation += 1
        self.user_id = None
        self.state = _empty_state()
        self.error = None
        self.status = LoadStatus.CLEARED
        logger.info("Workspace cleared")
        self._notify()

    async def load_for_user(self, user_id: str) -> bool:
        if self._disposed:
            return False
        if user_id == self.user_id:
            if self.status == LoadStatus.READY:
                return True
            if self.status == LoadStatus.LOADING and self._load_task is not None:
                return await self._load_task
        elif self.user_id is not None:
            self.clear()

        self.user_id = user_id
        self._generation += 1
        generation = self._generation
        self.status = LoadStatus.LOADING
        self.error = None
        self._notify()
        logger.info("Loading workspace for %s", user_id)
        self._load_task = asyncio.ensure_future(self._load(user_id, generation))
        return await self._load_task

    def _is_current(self, generation: int, user_id: str) -> bool:
        return not self._disposed and generation == self._generation and user_id == self.user_id

    def _load_failed(self, generation: int, user_id: str, message: str) -> bool:
        if self._is_current(generation, user_id):
            self.status = LoadStatus.ERRORED
            self.error = message
            self._notify()
        return False

    async def _fetch(self, user_id: str) -> Tuple[List[Page], List[DailyTask], List[CalendarEvent], FinanceData, HealthData]:
        user = await self._auth.get_user()
        if user is None or user.id != user_id:
            raise AuthError(AUTH_FAILED_MESSAGE)

        profile = await self._services.profiles.ensure(user.id, user.email)
        if profile is None:
            logger.warning("Could not ensure a profile for %s, continuing without it", user_id)

        names = ("pages", "daily_tasks", "calendar_events", "finance_data", "health_data")
        results = await asyncio.gather(
            self._services.pages.get_all(),
            self._services.tasks.get_all(),
            self._services.calendar.get_all(),
            self._services.finance.get(),
            self._services.health.get(),
            return_exceptions=True,
        )
        defaults = ([], [], [], default_finance_data(), default_health_data())
        resolved = []
        for name, result, default in zip(names, results, defaults):
            if isinstance(result, BaseException):
                logger.warning("Loading %s failed, using defaults: %s", name, result)
                resolved.append(default)
            else:
                resolved.append(result)
        return tuple(resolved)  # type: ignore[return-value]

    async def _fetch_in_time(self, user_id: str) -> Tuple[List[Page], List[DailyTask], List[CalendarEvent], FinanceData, HealthData]:
        try:
            return await asyncio.wait_for(self._fetch(user_id), timeout=self._load_timeout)
        except asyncio.TimeoutError as error:
            raise LoadTimeoutError(TIMEOUT_MESSAGE) from error

    async def _load(self, user_id: str, generation: int) -> bool:
        try:
            loaded = await self._fetch_in_time(user_id)
        except LoadTimeoutError:
            logger.warning("Workspace load for %s timed out after %.1fs", user_id, self._load_timeout)
            return self._load_failed(generation, user_id, TIMEOUT_MESSAGE)
        except AuthError as error:
            logger.error("Workspace load for %s rejected: %s", user_id, error)
            return self._load_failed(generation, user_id, AUTH_FAILED_MESSAGE)

        if not self._is_current(generation, user_id):
            logger.warning("Discarding stale workspace load for %s", user_id)
            return False

        pages, tasks, events, finance, health = loaded
        page_map, root_pages = tree.normalize_tree(pages)
        previous = self.state
        self.state = WorkspaceState(
            pages=page_map,
            root_pages=root_pages,
            current_page_id=previous.current_page_id if previous.current_page_id in page_map else None,
            current_section=previous.current_section,
            search_query=previous.search_query,
            daily_tasks={task.id: task for task in tasks},
            calendar_events={event.id: event for event in events},
            finance_data=finance,
            health_data=health,
        )
        self.status = LoadStatus.READY
        self.error = None
        logger.info("Workspace ready for %s: %d pages, %d tasks", user_id, len(page_map), len(tasks))
        self._notify()
        return True

    def dispose(self) -> None:
        self._disposed = True
        self._generation += 1
        self._unsubscribe_auth()
        self._listeners.clear()
        if self._load_task is not None and not self._load_task.done():
            self._load_task.cancel()

    # ------------------------------------------------------------------
    # documents

    def _page(self, page_id: str) -> Page:
        page = self.state.pages.get(page_id)
        if page is None:
            raise KeyError(f"Page {page_id} not found")
        return page

    def create_document(self, title: str = "Untitled", parent_id: Optional[str] = None) -> str:
        self._require_user()
        if parent_id is not None and parent_id not in self.state.pages:
            raise DocumentTreeError(f"Parent page {parent_id} not found")
        stamp = now_ms()
        page = Page(id=generate_id(), title=title or "Untitled", created_at=stamp, updated_at=stamp)
        parent_updated_at = self.state.pages[parent_id].updated_at if parent_id else None

        self.state.pages[page.id] = page
        tree.attach(self.state.pages, self.state.root_pages, page.id, parent_id, updated_at=stamp)
        self.state.current_page_id = page.id
        self._notify()

        self._spawn(self._persist_new_page(page.model_copy(deep=True), parent_updated_at, self._epoch))
        return page.id

    def _drop_created_page(self, page_id: str, parent_id: Optional[str], parent_updated_at: Optional[int]) -> None:
        removed = tree.remove_subtree(self.state.pages, self.state.root_pages, page_id)
        parent = self.state.pages.get(parent_id) if parent_id else None
        if parent is not None and parent_updated_at is not None:
            parent.updated_at = parent_updated_at
        if self.state.current_page_id in removed:
            self.state.current_page_id = parent_id if parent is not None else None

    async def _persist_new_page(self, page: Page, parent_updated_at: Optional[int], epoch: int) -> None:
        pages = self._services.pages
        async with self._writes.hold(page.id, page.parent_id):
            if self._superseded(epoch, f"insert of page {page.id}"):
                return
            created = await pages.create(page)
            if created is None:
                self._fail(
                    f"Failed to create page '{page.title}'",
                    epoch,
                    lambda: self._drop_created_page(page.id, page.parent_id, parent_updated_at),
                )
                return
            if page.parent_id is None or epoch != self._epoch:
                return
            parent = self.state.pages.get(page.parent_id)
            if parent is None:
                return
            if not await pages.update(parent.id, children=list(parent.children)):
                # Without the parent link the new row would be orphaned; take it back out.
                if self._superseded(epoch, f"cleanup of page {page.id}"):
                    return
                await pages.delete(page.id)
                self._fail(
                    f"Failed to link page '{page.title}' to its parent",
                    epoch,
                    lambda: self._drop_created_page(page.id, page.parent_id, parent_updated_at),
                )

    def update_document(self, page_id: str, **fields: Any) -> None:
        page = self._page(page_id)
        unknown = set(fields) - set(PAGE_UPDATABLE_FIELDS)
        if unknown:
            raise ValueError(f"Unknown page fields: {', '.join(sorted(unknown))}")
        if "blocks" in fields:
            fields["blocks"] = self._checked_blocks(fields["blocks"])
        checked = Page.model_validate({**page.model_dump(), **fields})
        written = {field: getattr(checked, field) for field in fields}

        previous = {field: getattr(page, field) for field in written}
        for field, value in written.items():
            setattr(page, field, value)
        page.updated_at = now_ms()
        self._notify()

        self._spawn(self._persist_page_fields(page_id, written, previous, self._epoch))

    @staticmethod
    def _checked_blocks(raw: List[Any]) -> List[Block]:
        parsed = [block if isinstance(block, Block) else Block.model_validate(block) for block in raw]
        for block in parsed:
            if block.data is not None:
                block_ops.ensure_valid(block.kind, block.data)
        return block_ops.renumber(block_ops.sort_blocks(parsed))

    async def _persist_page_fields(self, page_id: str, written: Dict[str, Any], previous: Dict[str, Any], epoch: int) -> None:
        async with self._writes.hold(page_id):
            if self._superseded(epoch, f"update of page {page_id}"):
                return
            saved = await self._services.pages.update(page_id, **written)
        if saved:
            return

        def _restore() -> None:
            page = self.state.pages.get(page_id)
            if page is None:
                return
            for field, value in written.items():
                # A newer local edit owns the field now; leave it alone.
                if getattr(page, field) == value:
                    setattr(page, field, previous[field])

        self._fail(f"Failed to update page {page_id}", epoch, _restore)

    def toggle_page_expansion(self, page_id: str) -> None:
        page = self._page(page_id)
        self.update_document(page_id, is_expanded=not page.is_expanded)

    def move_document(self, page_id: str, new_parent_id: Optional[str]) -> None:
        pages, root_pages = self.state.pages, self.state.root_pages
        tree.check_move(pages, page_id, new_parent_id)
        page = pages[page_id]
        old_parent_id = page.parent_id
        if old_parent_id == new_parent_id:
            return

        siblings = pages[old_parent_id].children if old_parent_id else root_pages
        old_index = siblings.index(page_id) if page_id in siblings else None
        # (record id, values after the move, values before it) in write order.
        writes: List[Tuple[str, Dict[str, Any], Dict[str, Any]]] = [(page_id, {"parent_id": new_parent_id}, {"parent_id": old_parent_id})]
        before = {parent_id: list(pages[parent_id].children) for parent_id in (old_parent_id, new_parent_id) if parent_id}

        stamp = now_ms()
        tree.detach(pages, root_pages, page_id, updated_at=stamp)
        tree.attach(pages, root_pages, page_id, new_parent_id, updated_at=stamp)
        page.updated_at = stamp
        self._notify()

        for parent_id, children in before.items():
            writes.append((parent_id, {"children": list(pages[parent_id].children)}, {"children": children}))
        self._spawn(self._persist_move(page_id, old_parent_id, new_parent_id, writes, old_index, self._epoch))

    def _undo_move(self, page_id: str, old_parent_id: Optional[str], new_parent_id: Optional[str], old_index: Optional[int]) -> None:
        pages, root_pages = self.state.pages, self.state.root_pages
        page = pages.get(page_id)
        if page is None or page.parent_id != new_parent_id:
            return
        if old_parent_id is not None and old_parent_id not in pages:
            return
        tree.detach(pages, root_pages, page_id)
        page.parent_id = old_parent_id
        siblings = pages[old_parent_id].children if old_parent_id else root_pages
        if page_id not in siblings:
            position = len(siblings) if old_index is None else min(old_index, len(siblings))
            siblings.insert(position, page_id)

    async def _persist_move(
        self,
        page_id: str,
        old_parent_id: Optional[str],
        new_parent_id: Optional[str],
        writes: List[Tuple[str, Dict[str, Any], Dict[str, Any]]],
        old_index: Optional[int],
        epoch: int,
    ) -> None:
        pages = self._services.pages
        done: List[Tuple[str, Dict[str, Any]]] = []
        async with self._writes.hold(page_id, old_parent_id, new_parent_id):
            # parent_id is what a reload trusts, so the page row is written first.
            for record_id, after, before in writes:
                if self._superseded(epoch, f"move of page {page_id}"):
                    return
                if not await pages.update(record_id, **after):
                    break
                done.append((record_id, before))
            else:
                return
            for record_id, before in reversed(done):
                if self._superseded(epoch, f"undo of move of page {page_id}"):
                    return
                if not await pages.update(record_id, **before):
                    logger.error("Could not undo partial move of %s on %s", page_id, record_id)
        self._fail(
            f"Failed to move page {page_id}",
            epoch,
            lambda: self._undo_move(page_id, old_parent_id, new_parent_id, old_index),
        )

    async def delete_document(self, page_id: str) -> bool:
        """Delete a page and its descendants, leaves first.

        A page leaves memory only once the store confirmed its deletion. The first
        failure stops the walk, so a surviving page never loses an ancestor.
        """
        self._page(page_id)
        epoch = self._epoch
        subtree = tree.collect_subtree(self.state.pages, page_id)
        parent_id = self.state.pages[page_id].parent_id

        confirmed: List[str] = []
        async with self._writes.hold(*subtree, parent_id):
            for doomed in subtree:
                if self._superseded(epoch, f"delete of page {doomed}"):
                    return False
                if not await self._services.pages.delete(doomed):
                    break
                confirmed.append(doomed)

            if epoch != self._epoch:
                return False
            for removed in confirmed:
                tree.remove_subtree(self.state.pages, self.state.root_pages, removed, updated_at=now_ms())
            if self.state.current_page_id in confirmed:
                self.state.current_page_id = None

            complete = len(confirmed) == len(subtree)
            parent = self.state.pages.get(parent_id) if parent_id else None
            if complete and parent is not None:
                if not await self._services.pages.update(parent.id, children=list(parent.children)):
                    self._fail(f"Deleted page {page_id} but could not update its parent", epoch)
                    return True

        if not complete:
            self._fail(f"Failed to delete page {page_id}", epoch)
            return False
        logger.info("Deleted page %s (%d pages)", page_id, len(confirmed))
        self._notify()
        return True

    # ------------------------------------------------------------------
    # blocks

    def add_block(self, page_id: str, kind: str, after_block_id: Optional[str] = None, content: str = "", data: Optional[Dict[str, Any]] = None) -> str:
        page = self._page(page_id)
        block = block_ops.new_block(kind, content, data)
        self.update_document(page_id, blocks=block_ops.insert_block(page.blocks, block, after_block_id))
        return block.id

    def update_block(self, page_id: str, block_id: str, content: Optional[str] = None, data: Optional[Dict[str, Any]] = None) -> None:
        page = self._page(page_id)
        self.update_document(page_id, blocks=block_ops.replace_block(page.blocks, block_id, content=content, data=data))

    def delete_block(self, page_id: str, block_id: str) -> None:
        page = self._page(page_id)
        self.update_document(page_id, blocks=block_ops.remove_block(page.blocks, block_id))

    def move_block(self, page_id: str, block_id: str, new_index: int) -> None:
        page = self._page(page_id)
        self.update_document(page_id, blocks=block_ops.move_block(page.blocks, block_id, new_index))

    # ------------------------------------------------------------------
    # daily tasks

    def _task(self, task_id: str) -> DailyTask:
        task = self.state.daily_tasks.get(task_id)
        if task is None:
            raise KeyError(f"Task {task_id} not found")
        return task

    def create_task(
        self,
        title: str,
        description: str = "",
        time_allocation: int = 30,
        priority: str = "medium",
        category: str = "Personal",
    ) -> str:
        self._require_user()
        stamp = now_ms()
        task = DailyTask(
            id=generate_id(),
            title=title,
            description=description,
            time_allocation=time_allocation,
            priority=priority,
            category=category,
            created_at=stamp,
            updated_at=stamp,
        )
        self.state.daily_tasks[task.id] = task
        self._notify()
        self._spawn(self._persist_new_task(task.model_copy(), self._epoch))
        return task.id

    async def _persist_new_task(self, task: DailyTask, epoch: int) -> None:
        async with self._writes.hold(task.id):
            if self._superseded(epoch, f"insert of task {task.id}"):
                return
            created = await self._services.tasks.create(task)
        if created is None:
            self._fail(f"Failed to create task '{task.title}'", epoch, lambda: self.state.daily_tasks.pop(task.id, None))

    def update_task(self, task_id: str, **fields: Any) -> None:
        task = self._task(task_id)
        if "streak" in fields or "completed" in fields:
            raise ValueError("Use toggle_task_completion to change completion and streak")
        unknown = set(fields) - set(TASK_UPDATABLE_FIELDS)
        if unknown:
            raise ValueError(f"Unknown task fields: {', '.join(sorted(unknown))}")
        checked = DailyTask.model_validate({**task.model_dump(), **fields})
        written = {field: getattr(checked, field) for field in fields}

        previous = {field: getattr(task, field) for field in written}
        for field, value in written.items():
            setattr(task, field, value)
        task.updated_at = now_ms()
        self._notify()
        self._spawn(self._persist_task_fields(task_id, written, previous, self._epoch))

    async def _persist_task_fields(self, task_id: str, written: Dict[str, Any], previous: Dict[str, Any], epoch: int) -> None:
        async with self._writes.hold(task_id):
            if self._superseded(epoch, f"update of task {task_id}"):
                return
            saved = await self._services.tasks.update(task_id, **written)
        if saved:
            return

        def _restore() -> None:
            task = self.state.daily_tasks.get(task_id)
            if task is None:
                return
            for field, value in written.items():
                if getattr(task, field) == value:
                    setattr(task, field, previous[field])

        self._fail(f"Failed to update task {task_id}", epoch, _restore)

    def toggle_task_completion(self, task_id: str) -> None:
        task = self._task(task_id)
        before = (task.completed, task.streak)
        if task.completed:
            task.completed, task.streak = False, max(0, task.streak - 1)
        else:
            task.completed, task.streak = True, task.streak + 1
        task.updated_at = now_ms()
        after = (task.completed, task.streak)
        self._notify()
        self._spawn(self._persist_completion(task_id, before, after, self._epoch))

    async def _persist_completion(self, task_id: str, before: Tuple[bool, int], after: Tuple[bool, int], epoch: int) -> None:
        async with self._writes.hold(task_id):
            if self._superseded(epoch, f"completion of task {task_id}"):
                return
            saved = await self._services.tasks.set_completion(task_id, completed=after[0], streak=after[1])
        if saved:
            return

        def _restore() -> None:
            task = self.state.daily_tasks.get(task_id)
            if task is not None and (task.completed, task.streak) == after:
                task.completed, task.streak = before

        self._fail(f"Failed to update completion for task {task_id}", epoch, _restore)

    async def delete_task(self, task_id: str) -> bool:
        self._task(task_id)
        epoch = self._epoch
        async with self._writes.hold(task_id):
            if self._superseded(epoch, f"delete of task {task_id}"):
                return False
            deleted = await self._services.tasks.delete(task_id)
        if not deleted:
            self._fail(f"Failed to delete task {task_id}", epoch)
            return False
        if epoch == self._epoch:
            self.state.daily_tasks.pop(task_id, None)
            self._notify()
        return True

    # ------------------------------------------------------------------
    # calendar

    def _event(self, event_id: str) -> CalendarEvent:
        event = self.state.calendar_events.get(event_id)
        if event is None:
            raise KeyError(f"Event {event_id} not found")
        return event

    def create_event(
        self,
        title: str,
        event_date: str,
        event_time: Optional[str] = None,
        description: Optional[str] = None,
        is_all_day: Optional[bool] = None,
        category: str = "general",
    ) -> str:
        self._require_user()
        stamp = now_ms()
        event = CalendarEvent(
            id=generate_id(),
            title=title,
            description=description,
            event_date=event_date,
            event_time=event_time,
            is_all_day=event_time is None if is_all_day is None else is_all_day,
            category=category,
            created_at=stamp,
            updated_at=stamp,
        )
        self.state.calendar_events[event.id] = event
        self._notify()
        self._spawn(self._persist_new_event(event.model_copy(), self._epoch))
        return event.id

    async def _persist_new_event(self, event: CalendarEvent, epoch: int) -> None:
        async with self._writes.hold(event.id):
            if self._superseded(epoch, f"insert of event {event.id}"):
                return
            created = await self._services.calendar.create(event)
        if created is None:
            self._fail(f"Failed to create event '{event.title}'", epoch, lambda: self.state.calendar_events.pop(event.id, None))

    def update_event(self, event_id: str, **fields: Any) -> None:
        event = self._event(event_id)
        unknown = set(fields) - set(EVENT_UPDATABLE_FIELDS)
        if unknown:
            raise ValueError(f"Unknown event fields: {', '.join(sorted(unknown))}")
        checked = CalendarEvent.model_validate({**event.model_dump(), **fields})
        written = {field: getattr(checked, field) for field in fields}
        previous = {field: getattr(event, field) for field in written}
        for field, value in written.items():
            setattr(event, field, value)
        event.updated_at = now_ms()
        self._notify()
        self._spawn(self._persist_event_fields(event_id, written, previous, self._epoch))

    async def _persist_event_fields(self, event_id: str, written: Dict[str, Any], previous: Dict[str, Any], epoch: int) -> None:
        async with self._writes.hold(event_id):
            if self._superseded(epoch, f"update of event {event_id}"):
                return
            saved = await self._services.calendar.update(event_id, **written)
        if saved:
            return

        def _restore() -> None:
            event = self.state.calendar_events.get(event_id)
            if event is None:
                return
            for field, value in written.items():
                if getattr(event, field) == value:
                    setattr(event, field, previous[field])

        self._fail(f"Failed to update event {event_id}", epoch, _restore)

    async def delete_event(self, event_id: str) -> bool:
        self._event(event_id)
        epoch = self._epoch
        async with self._writes.hold(event_id):
            if self._superseded(epoch, f"delete of event {event_id}"):
                return False
            deleted = await self._services.calendar.delete(event_id)
        if not deleted:
            self._fail(f"Failed to delete event {event_id}", epoch)
            return False
        if epoch == self._epoch:
            self.state.calendar_events.pop(event_id, None)
            self._notify()
        return True

    # ------------------------------------------------------------------
    # finance

    async def update_finance_data(self, **changes: Any) -> bool:
        """Replace whole finance sections and persist the aggregate in one write."""
        unknown = set(changes) - set(FINANCE_SECTIONS)
        if unknown:
            raise ValueError(f"Unknown finance sections: {', '.join(sorted(unknown))}")
        return await self._write_finance(lambda finance: changes)

    async def _write_finance(self, build: Callable[[FinanceData], Dict[str, Any]]) -> bool:
        """Read, merge and save the finance blob while holding its lock."""
        self._require_user()
        epoch = self._epoch
        async with self._writes.hold("finance"):
            if self._superseded(epoch, "finance save"):
                return False
            previous = self.state.finance_data
            merged = FinanceData.model_validate({**dict(previous), **build(previous)})
            self.state.finance_data = merged
            self._notify()
            if await self._services.finance.save(merged):
                return True

            def _restore() -> None:
                if self.state.finance_data is merged:
                    self.state.finance_data = previous

            self._fail("Failed to save finance data", epoch, _restore)
            return False

    async def add_wallet(self, name: str, balance: float = 0.0, currency: str = "USD", kind: str = "checking") -> Optional[str]:
        stamp = now_ms()
        wallet = Wallet(id=generate_id(), name=name, balance=balance, currency=currency, kind=kind, created_at=stamp, updated_at=stamp)

        def _with_wallet(finance: FinanceData) -> Dict[str, Any]:
            changes: Dict[str, Any] = {"wallets": {**finance.wallets, wallet.id: wallet}}
            if finance.settings.default_wallet_id is None:
                changes["settings"] = finance.settings.model_copy(update={"default_wallet_id": wallet.id})
            return changes

        saved = await self._write_finance(_with_wallet)
        return wallet.id if saved else None

    async def record_transaction(
        self,
        wallet_id: str,
        amount: float,
        direction: str,
        category_id: str,
        description: str = "",
        date: Optional[int] = None,
        tags: Optional[List[str]] = None,
        is_mindful: bool = False,
        notes: Optional[str] = None,
    ) -> Optional[str]:
        stamp = now_ms()
        transaction = Transaction(
            id=generate_id(),
            wallet_id=wallet_id,
            amount=amount,
            direction=direction,
            category_id=category_id,
            description=description,
            notes=notes,
            tags=tags or [],
            date=date if date is not None else stamp,
            is_mindful=is_mindful,
            created_at=stamp,
            updated_at=stamp,
        )

        def _applied(finance: FinanceData) -> Dict[str, Any]:
            wallets, transactions = ledger.apply_transaction(finance, transaction)
            return {"wallets": wallets, "transactions": transactions}

        saved = await self._write_finance(_applied)
        return transaction.id if saved else None

    async def delete_transaction(self, transaction_id: str) -> bool:
        def _reverted(finance: FinanceData) -> Dict[str, Any]:
            wallets, transactions = ledger.revert_transaction(finance, transaction_id, now_ms())
            return {"wallets": wallets, "transactions": transactions}

        return await self._write_finance(_reverted)

    # ------------------------------------------------------------------
    # health

    async def update_health_data(
        self,
        protocols: Optional[Dict[str, Any]] = None,
        quit_habits: Optional[Dict[str, Any]] = None,
        settings: Optional[Any] = None,
    ) -> bool:
        """Merge protocols and quit habits by id and save each changed record."""
        self._require_user()
        health = self.state.health_data
        changed_protocols = {key: value if isinstance(value, HealthProtocol) else HealthProtocol.model_validate(value) for key, value in (protocols or {}).items()}
        changed_habits = {key: value if isinstance(value, QuitHabit) else QuitHabit.model_validate(value) for key, value in (quit_habits or {}).items()}
        new_settings: Optional[HealthSettings] = None
        if isinstance(settings, HealthSettings):
            new_settings = settings
        elif settings is not None:
            new_settings = HealthSettings.model_validate({**health.settings.model_dump(), **settings})

        previous_protocols = {key: health.protocols.get(key) for key in changed_protocols}
        previous_habits = {key: health.quit_habits.get(key) for key in changed_habits}
        previous_settings = health.settings
        epoch = self._epoch

        self.state.health_data = health.model_copy(
            update={
                "protocols": {**health.protocols, **changed_protocols},
                "quit_habits": {**health.quit_habits, **changed_habits},
                "settings": new_settings or health.settings,
            }
        )
        self._notify()

        service = self._services.health
        keys = [*changed_protocols, *changed_habits, "health-settings" if new_settings is not None else None]
        saves: List[Tuple[Callable[[Any], Awaitable[bool]], Any]] = [(service.save_protocol, protocol) for protocol in changed_protocols.values()]
        saves += [(service.save_quit_habit, habit) for habit in changed_habits.values()]
        if new_settings is not None:
            saves.append((service.save_settings, new_settings))
        results: List[bool] = []
        async with self._writes.hold(*keys):
            for save, record in saves:
                if self._superseded(epoch, "health save"):
                    return False
                results.append(await save(record))
        if all(results):
            return True

        def _restore() -> None:
            current = self.state.health_data
            restored_protocols = dict(current.protocols)
            for key, written in changed_protocols.items():
                if restored_protocols.get(key) is not written:
                    continue
                if previous_protocols[key] is None:
                    restored_protocols.pop(key)
                else:
                    restored_protocols[key] = previous_protocols[key]
            restored_habits = dict(current.quit_habits)
            for key, written in changed_habits.items():
                if restored_habits.get(key) is not written:
                    continue
                if previous_habits[key] is None:
                    restored_habits.pop(key)
                else:
                    restored_habits[key] = previous_habits[key]
            restored_settings = previous_settings if new_settings is not None and current.settings is new_settings else current.settings
            self.state.health_data = current.model_copy(
                update={"protocols": restored_protocols, "quit_habits": restored_habits, "settings": restored_settings}
            )

        self._fail("Failed to save health data", epoch, _restore)
        return False

    async def add_protocol(self, title: str, content: str = "", description: str = "", category: str = "other") -> Optional[str]:
        stamp = now_ms()
        protocol = HealthProtocol(id=generate_id(), title=title, content=content, description=description, category=category, created_at=stamp, updated_at=stamp)
        saved = await self.update_health_data(protocols={protocol.id: protocol})
        return protocol.id if saved else None

    async def set_protocol_completed(self, protocol_id: str, completed: bool = True) -> bool:
        protocol = self.state.health_data.protocols.get(protocol_id)
        if protocol is None:
            raise KeyError(f"Protocol {protocol_id} not found")
        stamp = now_ms()
        updated = protocol.model_copy(update={"is_completed": completed, "completed_at": stamp if completed else None, "updated_at": stamp})
        return await self.update_health_data(protocols={protocol_id: updated})

    async def add_quit_habit(
        self,
        name: str,
        quit_date: Optional[int] = None,
        category: str = "other",
        description: Optional[str] = None,
        custom_category: Optional[str] = None,
    ) -> Optional[str]:
        stamp = now_ms()
        habit = QuitHabit(
            id=generate_id(),
            name=name,
            description=description,
            quit_date=quit_date if quit_date is not None else stamp,
            category=category,
            custom_category=custom_category,
            milestones=default_milestones(),
            created_at=stamp,
            updated_at=stamp,
        )
        saved = await self.update_health_data(quit_habits={habit.id: habit})
        return habit.id if saved else None

    async def delete_protocol(self, protocol_id: str) -> bool:
        if protocol_id not in self.state.health_data.protocols:
            raise KeyError(f"Protocol {protocol_id} not found")
        epoch = self._epoch
        async with self._writes.hold(protocol_id):
            if self._superseded(epoch, f"delete of protocol {protocol_id}"):
                return False
            deleted = await self._services.health.delete_protocol(protocol_id)
        if not deleted:
            self._fail(f"Failed to delete protocol {protocol_id}", epoch)
            return False
        if epoch == self._epoch:
            health = self.state.health_data
            remaining = {key: value for key, value in health.protocols.items() if key != protocol_id}
            self.state.health_data = health.model_copy(update={"protocols": remaining})
            self._notify()
        return True

    async def delete_quit_habit(self, habit_id: str) -> bool:
        if habit_id not in self.state.health_data.quit_habits:
            raise KeyError(f"Quit habit {habit_id} not found")
        epoch = self._epoch
        async with self._writes.hold(habit_id):
            if self._superseded(epoch, f"delete of quit habit {habit_id}"):
                return False
            deleted = await self._services.health.delete_quit_habit(habit_id)
        if not deleted:
            self._fail(f"Failed to delete quit habit {habit_id}", epoch)
            return False
        if epoch == self._epoch:
            health = self.state.health_data
            remaining = {key: value for key, value in health.quit_habits.items() if key != habit_id}
            self.state.health_data = health.model_copy(update={"quit_habits": remaining})
            self._notify()
        return True

    # ------------------------------------------------------------------
    # UI state

    def set_current_page(self, page_id: Optional[str]) -> None:
        if page_id is not None:
            self._page(page_id)
        self.state.current_page_id = page_id
        self._notify()

    def set_current_section(self, section: Section) -> None:
        if section not in SECTIONS:
            raise ValueError(f"Unknown section {section!r}")
        self.state.current_section = section
        self._notify()

    def set_search_query(self, query: str) -> None:
        self.state.search_query = query
        self._notify()

    # ------------------------------------------------------------------
    # read-only views

    def search_pages(self, query: Optional[str] = None) -> List[Page]:
        text = self.state.search_query if query is None else query
        return [self.state.pages[page_id] for page_id in search.search_pages(self.state.pages, text)]

    def page_tree(self, query: Optional[str] = None) -> List[Dict[str, Any]]:
        text = self.state.search_query if query is None else query
        return search.page_tree(self.state.pages, self.state.root_pages, text)

    def tasks_by_priority(self, priority: Optional[str] = None) -> List[DailyTask]:
        return search.tasks_by_priority(self.state.daily_tasks, priority)

    def task_summary(self) -> Dict[str, Any]:
        return search.task_summary(self.state.daily_tasks)

    def transactions_for_wallet(self, wallet_id: str) -> List[Transaction]:
        return ledger.transactions_for_wallet(self.state.finance_data, wallet_id)

    def spending_by_category(self, start: Optional[int] = None, end: Optional[int] = None) -> Dict[str, float]:
        return ledger.spending_by_category(self.state.finance_data, start, end)

    def events_on(self, event_date: str) -> List[CalendarEvent]:
        return search.events_on(self.state.calendar_events, event_date)

    def quit_habit_progress(self, habit_id: str, now: Optional[int] = None) -> Dict[str, Any]:
        habit = self.state.health_data.quit_habits.get(habit_id)
        if habit is None:
            raise KeyError(f"Quit habit {habit_id} not found")
        upcoming = milestones.next_milestone(habit, now)
        return {
            "habit": habit,
            "category": milestones.display_category(habit),
            "elapsed": milestones.time_since(habit.quit_date, now),
            "milestones": milestones.milestone_statuses(habit, now),
            "next_milestone": upcoming,
        }

    def summary(self) -> WorkspaceSummary:
        state = self.state
        return WorkspaceSummary(
            status=self.status.value,
            error=self.error,
            user_id=self.user_id,
            pages=len(state.pages),
            root_pages=len(state.root_pages),
            daily_tasks=len(state.daily_tasks),
            calendar_events=len(state.calendar_events),
            wallets=len(state.finance_data.wallets),
            transactions=len(state.finance_data.transactions),
            protocols=len(state.health_data.protocols),
            quit_habits=len(state.health_data.quit_habits),
        )
