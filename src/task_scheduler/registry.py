import logging
from types import MappingProxyType
from typing import Any, Callable, Dict, Iterable, List, Mapping, Union

from task_scheduler.domain.task import TaskDefinition
from task_scheduler.errors import UnknownTaskTypeError

logger = logging.getLogger(__name__)

DefinitionSource = Union[Iterable[Union[TaskDefinition, Mapping[str, Any]]], Mapping[str, Mapping[str, Any]]]


class TaskRegistry:
    """
    Read-only mapping of task type names to their definitions.

    The mapping is built once from the definitions given at construction; no
    registration is possible afterwards.
    """
    def __init__(self, definitions: DefinitionSource = ()):
        self._definitions: Dict[str, TaskDefinition] = {}
        for definition in _normalize(definitions):
            if definition.task_type in self._definitions:
                raise ValueError(f"A task definition for '{definition.task_type}' is already registered")
            self._definitions[definition.task_type] = definition
        self._snapshot: Mapping[str, TaskDefinition] = MappingProxyType(dict(self._definitions))

    @classmethod
    def load(cls, loader: Callable[[], DefinitionSource]) -> "TaskRegistry":
        """
        Build a registry from a loader callable.

        Args:
            loader: Returns either TaskDefinition objects or a mapping of task type
                to a definition dict in the loader shape (``description``, ``handler``,
                ``cronSchedule``, ``parametersSchema``, ``defaultParameters``,
                ``timeoutMs``, ``retryPolicy``).

        Raises:
            ValueError: If two definitions share a task type or a definition is invalid.
        """
        logger.info("Loading task definitions")
        registry = cls(loader())
        logger.info(f"Loaded {len(registry)} task definitions")
        return registry

    @property
    def definitions(self) -> Mapping[str, TaskDefinition]:
        return self._snapshot

    def task_types(self) -> List[str]:
        return list(self._definitions.keys())

    def get(self, task_type: str) -> TaskDefinition:
        """
        Look up a task definition.

        Raises:
            UnknownTaskTypeError: If no definition is registered under that name.
        """
        definition = self._definitions.get(task_type)
        if definition is None:
            raise UnknownTaskTypeError(task_type)
        return definition

    def __contains__(self, task_type: object) -> bool:
        return task_type in self._definitions

    def __len__(self) -> int:
        return len(self._definitions)


def _normalize(definitions: DefinitionSource) -> Iterable[TaskDefinition]:
    if isinstance(definitions, Mapping):
        for task_type, entry in definitions.items():
            if isinstance(entry, TaskDefinition):
                if entry.task_type != task_type:
                    raise ValueError(f"Task definition '{entry.task_type}' registered under key '{task_type}'")
                yield entry
            else:
                yield TaskDefinition.model_validate({**entry, "task_type": task_type})
    else:
        for entry in definitions:
            if isinstance(entry, TaskDefinition):
                yield entry
            elif isinstance(entry, Mapping):
                yield TaskDefinition.model_validate(entry)
            else:
                raise ValueError(f"Expected a TaskDefinition or a mapping, got {type(entry).__name__}")
