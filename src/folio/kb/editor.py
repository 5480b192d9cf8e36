"""Block editor state machine.

The editor is split in three layers:

- ``EditorState`` plus intent dataclasses and the pure ``reduce`` function.
  Every edit is an intent; reducing never raises and out-of-range indexes are
  ignored.
- ``intent_for_key`` translates a key press into an intent, independent of
  any UI toolkit.
- ``BlockEditorController`` owns the state for one editing session and
  persists the whole block list through a ``KnowledgeStore`` on save or
  publish.

Example:
    controller = BlockEditorController(store, page, actor_id="user-1")
    controller.dispatch(SetContent(0, "Hello"))
    await controller.save()
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable, Union

from ..errors import FolioError, PersistenceError, SaveInProgressError
from .blocks_models import (
    BlockType,
    ContentBlock,
    NESTABLE_TYPES,
    create_content_block,
    duplicate_content_block,
)
from .models import CreatePageInput, Page, PageStatus, UpdatePageInput
from .slash_commands import SlashCommand, get_command, menu_commands, move_highlight

if TYPE_CHECKING:
    from .store import KnowledgeStore

logger = logging.getLogger(__name__)


# =============================================================================
# State
# =============================================================================


@dataclass(frozen=True)
class CaretPosition:
    """Screen coordinates of the caret, used to anchor the slash menu."""

    top: float = 0.0
    left: float = 0.0


@dataclass(frozen=True)
class SlashMenuState:
    open: bool = False
    query: str = ""
    target_index: int | None = None
    screen_position: CaretPosition = field(default_factory=CaretPosition)
    highlighted_index: int = 0

    @property
    def commands(self) -> list[SlashCommand]:
        return menu_commands(self.query) if self.open else []

    @property
    def highlighted_command(self) -> SlashCommand | None:
        commands = self.commands
        if not commands:
            return None
        return commands[min(self.highlighted_index, len(commands) - 1)]


CLOSED_MENU = SlashMenuState()


@dataclass(frozen=True)
class EditorState:
    """Snapshot of one editing session.

    ``edit_count`` increases with every change that makes the draft dirty; a
    save compares it before and after to tell whether edits landed while the
    save was in flight.
    """

    blocks: tuple[ContentBlock, ...]
    title: str = ""
    selected_index: int | None = None
    is_dirty: bool = False
    is_saving: bool = False
    slash_menu: SlashMenuState = CLOSED_MENU
    edit_count: int = 0

    @classmethod
    def for_page(cls, page: Page) -> EditorState:
        blocks = tuple(page.content) or (create_content_block(BlockType.PARAGRAPH),)
        return cls(blocks=blocks, title=page.title)

    @classmethod
    def blank(cls, title: str = "") -> EditorState:
        return cls(blocks=(create_content_block(BlockType.PARAGRAPH),), title=title)


# =============================================================================
# Intents
# =============================================================================


@dataclass(frozen=True)
class InsertAfter:
    index: int


@dataclass(frozen=True)
class Delete:
    index: int


@dataclass(frozen=True)
class MoveUp:
    index: int


@dataclass(frozen=True)
class MoveDown:
    index: int


@dataclass(frozen=True)
class Duplicate:
    index: int


@dataclass(frozen=True)
class SetContent:
    index: int
    text: str
    caret: CaretPosition = field(default_factory=CaretPosition)


@dataclass(frozen=True)
class OpenSlashMenu:
    index: int
    query: str = ""
    caret: CaretPosition = field(default_factory=CaretPosition)


@dataclass(frozen=True)
class CloseSlashMenu:
    pass


@dataclass(frozen=True)
class ApplySlashCommand:
    command_id: str


@dataclass(frozen=True)
class SelectBlock:
    index: int | None


@dataclass(frozen=True)
class SetTitle:
    title: str


@dataclass(frozen=True)
class SlashMenuKey:
    key: str


@dataclass(frozen=True)
class MarkSaved:
    """Clear the dirty flag if nothing was edited after ``edit_count``."""

    edit_count: int


Intent = Union[
    InsertAfter,
    Delete,
    MoveUp,
    MoveDown,
    Duplicate,
    SetContent,
    OpenSlashMenu,
    CloseSlashMenu,
    ApplySlashCommand,
    SelectBlock,
    SetTitle,
    SlashMenuKey,
    MarkSaved,
]


# =============================================================================
# Reducers
# =============================================================================


def _in_range(state: EditorState, index: int | None) -> bool:
    return index is not None and 0 <= index < len(state.blocks)


def _edited(state: EditorState, **changes) -> EditorState:
    return dataclasses.replace(state, is_dirty=True, edit_count=state.edit_count + 1, **changes)


def _retarget_menu(menu: SlashMenuState, remap: Callable[[int], int | None]) -> SlashMenuState:
    """Keep the menu pointing at the same block after the list changed shape."""
    if not menu.open or menu.target_index is None:
        return menu
    new_target = remap(menu.target_index)
    if new_target is None:
        return CLOSED_MENU
    return dataclasses.replace(menu, target_index=new_target)


def _reduce_insert_after(state: EditorState, intent: InsertAfter) -> EditorState:
    i = intent.index
    if not _in_range(state, i):
        return state
    new_block = create_content_block(BlockType.PARAGRAPH)
    blocks = state.blocks[: i + 1] + (new_block,) + state.blocks[i + 1:]
    menu = _retarget_menu(state.slash_menu, lambda t: t + 1 if t > i else t)
    return _edited(state, blocks=blocks, selected_index=i + 1, slash_menu=menu)


def _reduce_delete(state: EditorState, intent: Delete) -> EditorState:
    i = intent.index
    if len(state.blocks) <= 1 or not _in_range(state, i):
        return state
    blocks = state.blocks[:i] + state.blocks[i + 1:]

    def remap(t: int) -> int | None:
        if t == i:
            return None
        return t - 1 if t > i else t

    menu = _retarget_menu(state.slash_menu, remap)
    return _edited(state, blocks=blocks, selected_index=max(0, i - 1), slash_menu=menu)


def _reduce_move(state: EditorState, intent: MoveUp | MoveDown) -> EditorState:
    i = intent.index
    j = i - 1 if isinstance(intent, MoveUp) else i + 1
    if not _in_range(state, i) or not _in_range(state, j):
        return state
    blocks = list(state.blocks)
    blocks[i], blocks[j] = blocks[j], blocks[i]
    menu = _retarget_menu(state.slash_menu, lambda t: j if t == i else (i if t == j else t))
    return _edited(state, blocks=tuple(blocks), selected_index=j, slash_menu=menu)


def _reduce_duplicate(state: EditorState, intent: Duplicate) -> EditorState:
    i = intent.index
    if not _in_range(state, i):
        return state
    copy = duplicate_content_block(state.blocks[i])
    blocks = state.blocks[: i + 1] + (copy,) + state.blocks[i + 1:]
    menu = _retarget_menu(state.slash_menu, lambda t: t + 1 if t > i else t)
    return _edited(state, blocks=blocks, selected_index=i + 1, slash_menu=menu)


def _open_menu(state: EditorState, index: int, query: str, caret: CaretPosition) -> SlashMenuState:
    previous = state.slash_menu
    highlighted = 0
    if previous.open and previous.target_index == index:
        if len(menu_commands(previous.query)) == len(menu_commands(query)):
            highlighted = previous.highlighted_index
    return SlashMenuState(
        open=True,
        query=query,
        target_index=index,
        screen_position=caret,
        highlighted_index=highlighted,
    )


def _reduce_set_content(state: EditorState, intent: SetContent) -> EditorState:
    i = intent.index
    if not _in_range(state, i):
        return state
    block = dataclasses.replace(state.blocks[i], content=intent.text)
    blocks = state.blocks[:i] + (block,) + state.blocks[i + 1:]

    menu = state.slash_menu
    if intent.text.startswith("/"):
        menu = _open_menu(state, i, intent.text[1:], intent.caret)
    elif menu.open and menu.target_index == i:
        menu = CLOSED_MENU
    return _edited(state, blocks=blocks, slash_menu=menu)


def _reduce_open_menu(state: EditorState, intent: OpenSlashMenu) -> EditorState:
    if not _in_range(state, intent.index):
        return state
    menu = _open_menu(state, intent.index, intent.query, intent.caret)
    return dataclasses.replace(state, slash_menu=menu)


def _reduce_close_menu(state: EditorState, intent: CloseSlashMenu) -> EditorState:
    if not state.slash_menu.open:
        return state
    return dataclasses.replace(state, slash_menu=CLOSED_MENU)


def _apply_command(state: EditorState, command: SlashCommand) -> EditorState:
    i = state.slash_menu.target_index
    if not state.slash_menu.open or not _in_range(state, i):
        return state
    current = state.blocks[i]
    block = dataclasses.replace(
        current,
        type=command.block_type,
        attributes=command.block_attributes(),
        content="",
        children=current.children if command.block_type in NESTABLE_TYPES else (),
    )
    blocks = state.blocks[:i] + (block,) + state.blocks[i + 1:]
    return _edited(state, blocks=blocks, selected_index=i, slash_menu=CLOSED_MENU)


def _reduce_apply_command(state: EditorState, intent: ApplySlashCommand) -> EditorState:
    command = get_command(intent.command_id)
    if command is None:
        return state
    return _apply_command(state, command)


def _reduce_select(state: EditorState, intent: SelectBlock) -> EditorState:
    if intent.index is not None and not _in_range(state, intent.index):
        return state
    return dataclasses.replace(state, selected_index=intent.index)


def _reduce_set_title(state: EditorState, intent: SetTitle) -> EditorState:
    return _edited(state, title=intent.title)


def _reduce_menu_key(state: EditorState, intent: SlashMenuKey) -> EditorState:
    menu = state.slash_menu
    if not menu.open:
        return state

    count = len(menu.commands)
    if intent.key == "ArrowDown":
        return dataclasses.replace(
            state, slash_menu=dataclasses.replace(menu, highlighted_index=move_highlight(menu.highlighted_index, count, 1))
        )
    if intent.key == "ArrowUp":
        return dataclasses.replace(
            state, slash_menu=dataclasses.replace(menu, highlighted_index=move_highlight(menu.highlighted_index, count, -1))
        )
    if intent.key == "Enter":
        command = menu.highlighted_command
        return _apply_command(state, command) if command else state
    if intent.key == "Escape":
        return dataclasses.replace(state, slash_menu=CLOSED_MENU)
    return state


def _reduce_mark_saved(state: EditorState, intent: MarkSaved) -> EditorState:
    if state.edit_count != intent.edit_count:
        return state
    return dataclasses.replace(state, is_dirty=False)


_REDUCERS: dict[type, Callable[[EditorState, Intent], EditorState]] = {
    InsertAfter: _reduce_insert_after,
    Delete: _reduce_delete,
    MoveUp: _reduce_move,
    MoveDown: _reduce_move,
    Duplicate: _reduce_duplicate,
    SetContent: _reduce_set_content,
    OpenSlashMenu: _reduce_open_menu,
    CloseSlashMenu: _reduce_close_menu,
    ApplySlashCommand: _reduce_apply_command,
    SelectBlock: _reduce_select,
    SetTitle: _reduce_set_title,
    SlashMenuKey: _reduce_menu_key,
    MarkSaved: _reduce_mark_saved,
}


def reduce(state: EditorState, intent: Intent) -> EditorState:
    """Apply one intent and return the resulting state.

    Unknown intents and out-of-range indexes leave the state unchanged.
    """
    reducer = _REDUCERS.get(type(intent))
    if reducer is None:
        logger.debug("Ignoring unknown editor intent %r", intent)
        return state
    return reducer(state, intent)


# =============================================================================
# Keyboard Translation
# =============================================================================


_MENU_KEYS = frozenset({"ArrowUp", "ArrowDown", "Enter", "Escape"})


@dataclass(frozen=True)
class KeyEvent:
    """A key press inside block ``index``.

    ``caret_offset`` is the caret's character offset within the block text.
    """

    key: str
    shift: bool = False
    caret_offset: int = 0


@dataclass(frozen=True)
class KeyResult:
    intent: Intent | None = None
    prevent_default: bool = False


NO_ACTION = KeyResult()


def intent_for_key(state: EditorState, index: int, event: KeyEvent) -> KeyResult:
    """Map a key press in block ``index`` to an editor intent.

    While the slash menu is open, navigation keys belong to the menu only.
    """
    if not _in_range(state, index):
        return NO_ACTION

    if state.slash_menu.open and event.key in _MENU_KEYS:
        return KeyResult(SlashMenuKey(event.key), prevent_default=True)

    block = state.blocks[index]
    last = len(state.blocks) - 1

    if event.key == "Enter" and not event.shift:
        return KeyResult(InsertAfter(index), prevent_default=True)
    if event.key == "Backspace" and block.content == "" and len(state.blocks) > 1:
        return KeyResult(Delete(index), prevent_default=True)
    if event.key == "ArrowUp" and index > 0 and event.caret_offset == 0:
        return KeyResult(SelectBlock(index - 1), prevent_default=True)
    if event.key == "ArrowDown" and index < last and event.caret_offset >= len(block.content):
        return KeyResult(SelectBlock(index + 1), prevent_default=True)
    return NO_ACTION


# =============================================================================
# Controller
# =============================================================================


class BlockEditorController:
    """Owns the draft of one page for one editing session.

    The controller can also start without a page; the first save then creates
    it in ``space_id`` (under ``parent_id``).
    """

    def __init__(
        self,
        store: KnowledgeStore,
        page: Page | None = None,
        *,
        actor_id: str,
        space_id: str | None = None,
        parent_id: str | None = None,
    ) -> None:
        if page is None and space_id is None:
            raise ValueError("space_id is required when editing a new page")
        self._store = store
        self._actor_id = actor_id
        self._space_id = page.space_id if page else space_id
        self._parent_id = page.parent_id if page else parent_id
        self.page = page
        self.state = EditorState.for_page(page) if page else EditorState.blank()

    @property
    def page_id(self) -> str | None:
        return self.page.id if self.page else None

    @property
    def is_new(self) -> bool:
        return self.page is None

    def dispatch(self, intent: Intent) -> EditorState:
        self.state = reduce(self.state, intent)
        return self.state

    def handle_key(self, index: int, event: KeyEvent) -> KeyResult:
        result = intent_for_key(self.state, index, event)
        if result.intent is not None:
            self.dispatch(result.intent)
        return result

    async def save(self, change_message: str | None = None) -> Page:
        """Persist the draft; the page status becomes draft.

        A clean draft of an existing page is not written again.
        """
        if self.page is not None and not self.state.is_dirty:
            return self.page
        return await self._persist(PageStatus.DRAFT, change_message)

    async def publish(self, change_message: str | None = None) -> Page:
        """Persist the draft and mark the page published."""
        return await self._persist(PageStatus.PUBLISHED, change_message)

    async def _persist(self, status: PageStatus, change_message: str | None) -> Page:
        if self.state.is_saving:
            raise SaveInProgressError(page_id=self.page_id)

        snapshot = self.state
        self.state = dataclasses.replace(self.state, is_saving=True)
        try:
            page = await asyncio.to_thread(self._write, snapshot, status, change_message)
        except FolioError:
            logger.warning("Saving page %s failed; draft kept", self.page_id or "(new)")
            raise
        except Exception as e:
            logger.error("Saving page %s failed: %s", self.page_id or "(new)", e)
            raise PersistenceError(f"Failed to save page: {e}", operation="save page", table="pages") from e
        finally:
            self.state = dataclasses.replace(self.state, is_saving=False)

        self.page = page
        self.state = reduce(self.state, MarkSaved(snapshot.edit_count))
        logger.info("Saved page %s at version %d (%s)", page.id, page.version, status.value)
        return page

    def _write(self, snapshot: EditorState, status: PageStatus, change_message: str | None) -> Page:
        if self.page is None:
            return self._store.create_page(
                CreatePageInput(
                    space_id=self._space_id,
                    title=snapshot.title,
                    content=list(snapshot.blocks),
                    parent_id=self._parent_id,
                    status=status,
                ),
                actor_id=self._actor_id,
            )

        page = self._store.update_page(
            self.page.id,
            UpdatePageInput(
                title=snapshot.title,
                content=list(snapshot.blocks),
                status=status,
                change_message=change_message,
            ),
            actor_id=self._actor_id,
        )
        if page is None:
            raise PersistenceError(
                f"Page {self.page.id} no longer exists",
                operation="save page",
                table="pages",
            )
        return page
