"""Worker thread running the provisioning pipeline away from the caller. The caller
sends `TaskMessage`s and receives `ResultMessage`s, both through queues, the worker and
the caller never share any other state.
"""

from threading import Thread
from pathlib import Path
from queue import Queue
import logging

from .event import Watcher, ProgressEvent, CompleteEvent, ErrorEvent, ValidateEvent
from .java import JavaDiscovery, get_java_discovery
from .download import DownloadOrchestrator
from .provision import JavaProvisioner
from .manifest import ManifestError
from .standard import Installer, DEFAULT_VERSION
from .config import Config

from typing import Optional, Any, List


logger = logging.getLogger(__name__)


class TaskMessage:
    """A task sent to the worker, `execute` runs one of the worker's functions with the
    given arguments and `changeContext` replaces the worker's configuration with the
    arguments `[config]` or `[config, java_exec]`.
    """

    EXECUTE = "execute"
    CHANGE_CONTEXT = "changeContext"

    __slots__ = "task", "function", "args"

    def __init__(self, task: str, function: Optional[str] = None, args: Optional[List[Any]] = None) -> None:
        self.task = task
        self.function = function
        self.args = [] if args is None else args

    def __repr__(self) -> str:
        return f"<TaskMessage {self.task} {self.function}>"


class ResultMessage:
    """A message sent by the worker. The context is either the name of the executed
    function for its result, or `progress`, `complete`, `error` and `validate` for the
    events emitted while executing.
    """

    __slots__ = "context", "data", "result", "error", "args"

    def __init__(self, context: str, *,
        data: Optional[str] = None,
        result: Any = None,
        error: Optional[Exception] = None,
        args: Optional[List[Any]] = None
    ) -> None:
        self.context = context
        self.data = data
        self.result = result
        self.error = error
        self.args = [] if args is None else args

    def __repr__(self) -> str:
        return f"<ResultMessage {self.context} {self.data}>"


class _WorkerWatcher(Watcher):
    """Translate the pipeline's events into result messages.
    """

    def __init__(self, worker: "Worker") -> None:
        self.worker = worker

    def handle(self, event: Any) -> None:
        if isinstance(event, ProgressEvent):
            self.worker.emit(ResultMessage("progress", data=event.data, result={
                "data": event.data,
                "value": event.value,
                "total": event.total,
                "percent": event.percent
            }))
        elif isinstance(event, CompleteEvent):
            self.worker.emit(ResultMessage("complete", data=event.data, result=event.value))
        elif isinstance(event, ErrorEvent):
            self.worker.emit(ResultMessage("error", data=event.data, error=event.error))
        elif isinstance(event, ValidateEvent):
            self.worker.emit(ResultMessage("validate", data=event.phase))


class Worker(Thread):
    """The worker thread, start it and then send tasks. The worker stops when receiving
    `stop`, or by itself when a manifest can't be loaded.
    """

    # Functions that can be executed, by their name in task messages.
    FUNCTIONS = {
        "validateJava": "validate_java",
        "_enqueueOpenJDK": "enqueue_open_jdk",
        "processDlQueues": "process_dl_queues",
        "validateEverything": "validate_everything",
    }

    def __init__(self, config: Config, *,
        java_exec: Optional[str] = None,
        timeout: Optional[float] = None,
        discovery: Optional[JavaDiscovery] = None
    ) -> None:
        super().__init__(name="Worker Thread", daemon=True)
        self.tasks: Queue = Queue()
        self.results: Queue = Queue()
        self.connected = True
        self.timeout = timeout
        self.discovery = discovery
        self.change_context(config, java_exec)

    def change_context(self, config: Config, java_exec: Optional[str] = None) -> None:
        self.config = config
        self.java_exec = config.java_executable if java_exec is None else java_exec
        watcher = _WorkerWatcher(self)
        self.orchestrator = DownloadOrchestrator(watcher=watcher, java_exec=self.java_exec)
        self.installer = Installer(config, orchestrator=self.orchestrator, watcher=watcher, timeout=self.timeout)
        self.provisioner = JavaProvisioner(self.orchestrator, watcher=watcher, timeout=self.timeout)

    def send(self, task: TaskMessage) -> None:
        self.tasks.put(task)

    def stop(self) -> None:
        self.tasks.put(None)

    def disconnect(self) -> None:
        """Stop delivering messages, running transfers are not aborted.
        """
        self.connected = False

    def emit(self, message: ResultMessage) -> None:
        if self.connected:
            self.results.put(message)

    def run(self) -> None:

        while True:

            task: Optional[TaskMessage] = self.tasks.get()
            if task is None:
                break

            if task.task == TaskMessage.CHANGE_CONTEXT:
                self.change_context(*task.args)
            elif task.task == TaskMessage.EXECUTE:
                if not self.execute(task):
                    logger.error("Unrecoverable error, terminating worker")
                    break
            else:
                logger.warning("Unknown task %s", task.task)

    def execute(self, task: TaskMessage) -> bool:
        """Execute a function and emit its result.

        :return: False if the worker should terminate.
        """

        function = task.function
        if function not in Worker.FUNCTIONS:
            self.emit(ResultMessage(str(function), error=ValueError(f"unknown function '{function}'"), args=task.args))
            return True

        try:
            result = getattr(self, Worker.FUNCTIONS[function])(*task.args)
        except ManifestError as e:
            self.emit(ResultMessage(function, error=e, args=task.args))
            return False
        except Exception as e:
            logger.exception("Function %s failed", function)
            self.emit(ResultMessage(function, error=e, args=task.args))
            return True

        error = getattr(result, "error", None)
        self.emit(ResultMessage(function, result=result, error=error, args=task.args))
        return not isinstance(error, ManifestError)

    def validate_java(self, data_dir: Optional[str] = None) -> Optional[str]:
        discovery = get_java_discovery() if self.discovery is None else self.discovery
        exec_path = discovery.discover(self.config.data_dir if data_dir is None else Path(data_dir))
        return None if exec_path is None else str(exec_path)

    def enqueue_open_jdk(self, data_dir: Optional[str] = None) -> bool:
        return self.provisioner.enqueue(self.config.data_dir if data_dir is None else Path(data_dir))

    def process_dl_queues(self, categories: Optional[list] = None) -> list:
        if categories is None:
            return self.orchestrator.process_queues()
        return self.orchestrator.process_queues([tuple(category) for category in categories])

    def validate_everything(self, version: str = DEFAULT_VERSION, force: bool = True) -> Any:
        return self.installer.validate_everything(version, force)
