"""
Action and Dataset Store

This module holds the user's actions (gesture classes) and their
recordings, and is the single place they are edited.

The store provides:
- Action management: add, rename, change icon, delete
- Recording management: add and delete per action
- Detection settings: required confidence and tests-passed bookkeeping
- Dataset import / export in the JSON form shared with other tools
- The data window matching the loaded recordings

The list always holds at least one action. Deleting the last one leaves an
empty placeholder action behind, ready to record into.
"""
import json
import logging
import threading
import time
from dataclasses import replace
from typing import Any, Callable, Dict, Hashable, List, Optional, Sequence, Union

from ..config import DEFAULT_ICONS, FALLBACK_ICON
from ..data_model import (
    CURRENT,
    Action,
    DataWindow,
    Recording,
    get_data_window_from_actions,
    get_total_num_samples,
)
from ..errors import DatasetFormatError, UnknownActionError

logger = logging.getLogger(__name__)

# listener(event, invalidates_model)
ChangeListener = Callable[[str, bool], None]


class ActionStore:
    """
    Ordered, thread-safe list of actions.

    Actions are immutable; every change replaces the affected action with
    an updated copy. Readers get snapshots and never see a half-applied
    change.

    Attributes:
        actions: Snapshot of the current actions, in class order
        data_window: Window matching the stored recordings
    """

    def __init__(self, actions: Optional[Sequence[Action]] = None):
        self._lock = threading.RLock()
        self._listeners: List[ChangeListener] = []
        self._actions: List[Action] = []
        self._data_window: DataWindow = CURRENT
        self._last_id = 0
        self._revision = 0

        if actions:
            self._actions = list(actions)
            self._data_window = get_data_window_from_actions(self._actions)
        else:
            self._actions = [self._create_first_action()]

    # -------------------------------------------------------------------------
    # Reading
    # -------------------------------------------------------------------------

    @property
    def actions(self) -> List[Action]:
        with self._lock:
            return list(self._actions)

    @property
    def data_window(self) -> DataWindow:
        with self._lock:
            return self._data_window

    @property
    def revision(self) -> int:
        """Counter bumped by every change that makes a trained model stale."""
        with self._lock:
            return self._revision

    def get_action(self, action_id: Hashable) -> Action:
        """
        Look up an action by ID.

        Raises:
            UnknownActionError: If no action has this ID
        """
        with self._lock:
            return self._actions[self._index_of(action_id)]

    def classification_ids(self) -> List[Hashable]:
        """Action IDs in class order."""
        with self._lock:
            return [a.id for a in self._actions]

    def total_recordings(self) -> int:
        with self._lock:
            return get_total_num_samples(self._actions)

    # -------------------------------------------------------------------------
    # Actions
    # -------------------------------------------------------------------------

    def add_action(self, name: str = '', icon: Optional[str] = None) -> Action:
        """
        Append a new action without recordings.

        Args:
            name: Display name
            icon: Icon name. If None, the first default icon not already in
                  use is picked.

        Returns:
            The new action
        """
        with self._lock:
            action = Action(
                id=self._next_id(),
                name=name,
                icon=icon or self._pick_icon(self._actions),
            )
            self._actions.append(action)
        logger.info("Added action %s", action.id)
        self._notify('action_added', True)
        return action

    def delete_action(self, action_id: Hashable) -> None:
        """
        Remove an action and its recordings.

        Removing the last action leaves a fresh placeholder action and
        resets the data window to the current one.
        """
        with self._lock:
            index = self._index_of(action_id)
            del self._actions[index]
            if not self._actions:
                self._actions = [self._create_first_action()]
                self._data_window = CURRENT
        logger.info("Deleted action %s", action_id)
        self._notify('action_deleted', True)

    def delete_all_actions(self) -> None:
        with self._lock:
            self._actions = [self._create_first_action()]
            self._data_window = CURRENT
        logger.info("Deleted all actions")
        self._notify('actions_cleared', True)

    def set_action_name(self, action_id: Hashable, name: str) -> Action:
        return self._update(action_id, 'action_renamed', name=name)

    def set_action_icon(self, action_id: Hashable, icon: str) -> Action:
        """
        Set an action's icon.

        If another action already uses the icon, that action takes over
        this action's previous icon, so icons stay unique.
        """
        with self._lock:
            index = self._index_of(action_id)
            current_icon = self._actions[index].icon
            for i, action in enumerate(self._actions):
                if i == index:
                    self._actions[i] = replace(action, icon=icon)
                elif action.icon == icon and current_icon:
                    self._actions[i] = replace(action, icon=current_icon)
            updated = self._actions[index]
        self._notify('action_icon_changed', False)
        return updated

    def set_required_confidence(self, action_id: Hashable, value: float) -> Action:
        """
        Set the confidence an action must exceed to be detected.

        Raises:
            ValueError: If value is outside [0, 1]
        """
        if not 0.0 <= value <= 1.0:
            raise ValueError(f"Required confidence must be in [0, 1], got {value}")
        return self._update(action_id, 'required_confidence_changed',
                            required_confidence=float(value))

    def set_tests_passed(self, values: Sequence[int]) -> None:
        """
        Store held-out test results, one value per action in class order.

        Raises:
            ValueError: If the number of values does not match the actions
        """
        with self._lock:
            if len(values) != len(self._actions):
                raise ValueError(
                    f"Expected {len(self._actions)} test results, got {len(values)}"
                )
            self._actions = [replace(a, tests_passed=int(v))
                             for a, v in zip(self._actions, values)]
        self._notify('tests_passed_changed', False)

    # -------------------------------------------------------------------------
    # Recordings
    # -------------------------------------------------------------------------

    def add_recordings(self, action_id: Hashable, recordings: Sequence[Recording]) -> Action:
        """
        Add recordings to an action.

        New recordings go in front of the existing ones, so the most
        recent recordings come first.

        Raises:
            UnknownActionError: If no action has this ID
            DatasetFormatError: If a recording is empty, has axes of
                different lengths or holds non-finite values
        """
        for recording in recordings:
            recording.validate()
        with self._lock:
            index = self._index_of(action_id)
            action = self._actions[index]
            stamped = [r if r.id is not None else replace(r, id=self._next_id())
                       for r in recordings]
            updated = action.with_recordings(stamped + list(action.recordings))
            self._actions[index] = updated
            if get_total_num_samples(self._actions) == len(stamped):
                # First recordings decide the data window
                self._data_window = get_data_window_from_actions(self._actions)
        self._notify('recordings_added', True)
        return updated

    def delete_recording(self, action_id: Hashable, recording_index: int) -> Action:
        """
        Remove one recording by position.

        When no recordings remain in the store the data window resets to
        the current one.

        Raises:
            UnknownActionError: If no action has this ID
            IndexError: If the action has no recording at this position
        """
        with self._lock:
            index = self._index_of(action_id)
            action = self._actions[index]
            if not 0 <= recording_index < len(action.recordings):
                raise IndexError(f"Action {action_id} has no recording {recording_index}")
            recordings = [r for i, r in enumerate(action.recordings) if i != recording_index]
            updated = action.with_recordings(recordings)
            self._actions[index] = updated
            if get_total_num_samples(self._actions) == 0:
                self._data_window = CURRENT
        self._notify('recording_deleted', True)
        return updated

    # -------------------------------------------------------------------------
    # Dataset import / export
    # -------------------------------------------------------------------------

    def load_dataset(self, dataset: Union[str, bytes, Sequence[Any]]) -> None:
        """
        Replace all actions with an imported dataset.

        Args:
            dataset: Actions, action dicts, or the JSON text of a dataset
                     export

        Raises:
            DatasetFormatError: If the dataset is malformed
        """
        if isinstance(dataset, (str, bytes)):
            try:
                dataset = json.loads(dataset)
            except ValueError as e:
                raise DatasetFormatError(f"Dataset is not valid JSON: {e}") from e
        if not isinstance(dataset, list):
            raise DatasetFormatError("Dataset must be a list of actions")

        actions = [a if isinstance(a, Action) else Action.from_dict(a) for a in dataset]
        if len({a.id for a in actions}) != len(actions):
            raise DatasetFormatError("Duplicate action IDs in dataset")

        # Actions without an icon get the first unused default
        for i, action in enumerate(actions):
            if not action.icon:
                actions[i] = replace(action, icon=self._pick_icon(actions))

        with self._lock:
            self._actions = actions or [self._create_first_action()]
            self._data_window = get_data_window_from_actions(self._actions)
        logger.info(
            "Loaded dataset: %d actions, %d recordings",
            len(actions), get_total_num_samples(actions),
        )
        self._notify('dataset_loaded', True)

    def export_dataset(self) -> List[Dict[str, Any]]:
        """Actions as JSON-compatible dicts."""
        with self._lock:
            return [a.to_dict() for a in self._actions]

    def to_json(self, indent: Optional[int] = 2) -> str:
        return json.dumps(self.export_dataset(), indent=indent)

    # -------------------------------------------------------------------------
    # Listeners
    # -------------------------------------------------------------------------

    def add_listener(self, callback: ChangeListener) -> None:
        """
        Add a listener for changes.

        Args:
            callback: Function called with (event, invalidates_model) after
                      every change. invalidates_model is True when the
                      change makes a trained model stale.
        """
        self._listeners.append(callback)

    def remove_listener(self, callback: ChangeListener) -> None:
        if callback in self._listeners:
            self._listeners.remove(callback)

    def _notify(self, event: str, invalidates_model: bool) -> None:
        if invalidates_model:
            with self._lock:
                self._revision += 1
        for listener in list(self._listeners):
            try:
                listener(event, invalidates_model)
            except Exception:
                logger.exception("Error in action store listener")

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _update(self, action_id: Hashable, event: str, **changes) -> Action:
        with self._lock:
            index = self._index_of(action_id)
            updated = replace(self._actions[index], **changes)
            self._actions[index] = updated
        self._notify(event, False)
        return updated

    def _index_of(self, action_id: Hashable) -> int:
        for i, action in enumerate(self._actions):
            if action.id == action_id:
                return i
        raise UnknownActionError(action_id)

    def _next_id(self) -> int:
        """Millisecond timestamp IDs, bumped to stay unique within the store."""
        used = {a.id for a in self._actions}
        candidate = max(int(time.time() * 1000), self._last_id + 1)
        while candidate in used:
            candidate += 1
        self._last_id = candidate
        return candidate

    def _create_first_action(self) -> Action:
        return Action(id=self._next_id(), icon=DEFAULT_ICONS[0])

    @staticmethod
    def _pick_icon(actions: Sequence[Action]) -> str:
        used = {a.icon for a in actions}
        for icon in DEFAULT_ICONS:
            if icon not in used:
                return icon
        return FALLBACK_ICON
