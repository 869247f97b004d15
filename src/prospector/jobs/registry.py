from dataclasses import dataclass, field
from typing import Any, Iterator, Optional, Union

from prospector.jobs.job import JobHandler, JobOptions
from prospector.main.logging import get_logger

logger = get_logger(__name__)


@dataclass
class JobDefinition:
    name: str
    handler: JobHandler
    options: JobOptions = field(default_factory=JobOptions)

    @property
    def concurrency(self) -> Optional[int]:
        return self.options.concurrency


class JobRegistry:
    """Maps job names to the handler that runs them."""

    def __init__(self):
        self._definitions: dict[str, JobDefinition] = {}

    def register(
        self,
        name: str,
        handler: JobHandler,
        options: Union[JobOptions, dict[str, Any], None] = None,
    ) -> JobDefinition:
        if not callable(handler):
            raise TypeError(f"Handler for job '{name}' must be callable")

        definition = JobDefinition(name=name, handler=handler, options=JobOptions.coerce(options))
        if name in self._definitions:
            logger.info(f"Replacing job definition {name}", extra={"job_name": name})
        self._definitions[name] = definition
        return definition

    def get(self, name: str) -> Optional[JobDefinition]:
        return self._definitions.get(name)

    def names(self) -> list[str]:
        return list(self._definitions)

    def __contains__(self, name: object) -> bool:
        return name in self._definitions

    def __iter__(self) -> Iterator[JobDefinition]:
        return iter(list(self._definitions.values()))

    def __len__(self) -> int:
        return len(self._definitions)
