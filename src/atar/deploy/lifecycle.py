"""Ephemeral deployment lifecycle.

The controller sequences preflight -> workspace prepare -> init -> apply ->
output. Once apply succeeds a DeploymentSession exists, and destroy is
guaranteed to run exactly once, whichever of these fires first:

- an explicit ``session.teardown()`` call
- SIGINT / SIGTERM while waiting under a TerminationGuard
- an unhandled exception reaching ``sys.excepthook``
- interpreter exit (``atexit``)
"""

from __future__ import annotations

import atexit
import signal
import sys
import threading
from collections.abc import Callable, Generator, Iterable
from contextlib import contextmanager
from types import FrameType, TracebackType
from typing import Any

import click

from atar.deploy.outputs import decode_outputs
from atar.deploy.terraform import TerraformRunner
from atar.deploy.workspace import WorkspaceManager
from atar.lib.errors import AtarError
from atar.lib.logging_config import get_logger
from atar.models.deployment import (
    DeploymentRequest,
    LifecycleStage,
    LifecycleState,
    OutputSet,
    Workspace,
)

logger = get_logger(__name__)

DEFAULT_SIGNALS: tuple[signal.Signals, ...] = (signal.SIGINT, signal.SIGTERM)

# Poll interval while waiting for a termination signal
_WAIT_INTERVAL = 0.5


class DeploymentSession:
    """A live deployment whose destroy runs at most once.

    The fired flag is checked and set under a re-entrant lock. A signal
    handler re-entering on the thread that is already tearing down sees the
    flag and returns; other threads block until the running destroy ends.
    """

    def __init__(
        self,
        request: DeploymentRequest,
        workspace: Workspace,
        runner: TerraformRunner,
    ) -> None:
        """Bind a session to its request, workspace and runner."""
        self.request = request
        self.workspace = workspace
        self._runner = runner
        self._lock = threading.RLock()
        self._fired = False
        self.state = LifecycleState.DEPLOYED
        self.teardown_error: AtarError | None = None

    @property
    def torn_down(self) -> bool:
        """Whether teardown has been attempted."""
        return self._fired

    def teardown(self) -> bool:
        """Destroy the deployment unless it was already torn down.

        Returns:
            True if this call ran destroy, False if teardown had already fired

        Raises:
            AtarError: If destroy fails. Teardown still counts as attempted
                and is not retried.
        """
        with self._lock:
            if self._fired:
                return False
            self._fired = True
            self.state = LifecycleState.DESTROYING
            logger.debug(f"Destroying resources in {self.workspace.working_dir}")
            try:
                self._runner.destroy(
                    self.workspace.working_dir,
                    self.request.variables,
                    verbose=self.request.verbose,
                )
            except AtarError as exc:
                self.teardown_error = exc
                raise
            finally:
                self.state = LifecycleState.TORN_DOWN
        return True

    def teardown_quietly(self) -> bool:
        """Best-effort teardown for cleanup paths; never raises.

        Returns:
            True if this call ran destroy successfully
        """
        try:
            return self.teardown()
        except Exception as exc:
            logger.error(f"Teardown failed: {exc}")
            click.secho(
                f"Failed to destroy Terraform resources: {exc}", fg="red", err=True
            )
            return False

    def __enter__(self) -> DeploymentSession:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.teardown_quietly()


class TerminationGuard:
    """Tie a session's teardown to process termination.

    While installed, SIGINT/SIGTERM set a single-slot event that ``wait``
    blocks on, an unhandled exception tears down before the previous
    ``sys.excepthook`` prints it, and interpreter exit tears down via
    ``atexit``. All paths go through the session's one-shot gate.

    Signal handlers can only be installed from the main thread.

    Example:
        >>> with TerminationGuard(session) as guard:
        ...     guard.wait()
    """

    def __init__(
        self,
        session: DeploymentSession,
        signals: Iterable[signal.Signals] = DEFAULT_SIGNALS,
    ) -> None:
        """Prepare a guard; nothing is installed until ``install``.

        Args:
            session: Deployment to tear down on termination
            signals: Signals that end the wait (default: SIGINT and SIGTERM)
        """
        self._session = session
        self._signals = tuple(signals)
        self._event = threading.Event()
        self._received: int | None = None
        self._previous_handlers: dict[int, Any] = {}
        self._previous_excepthook = sys.excepthook
        self._excepthook = self._on_unhandled_exception
        self._exit_hook = self._on_exit
        self._installed = False

    @property
    def received_signal(self) -> int | None:
        """The first termination signal received, if any."""
        return self._received

    def install(self) -> None:
        """Install signal handlers, the exception hook and the exit hook."""
        if self._installed:
            return
        for signum in self._signals:
            self._previous_handlers[signum] = signal.signal(signum, self._on_signal)
        self._previous_excepthook = sys.excepthook
        sys.excepthook = self._excepthook
        atexit.register(self._exit_hook)
        self._installed = True
        logger.debug("Termination guard installed")

    def uninstall(self) -> None:
        """Restore the handlers and hooks that were active before install."""
        if not self._installed:
            return
        for signum, previous in self._previous_handlers.items():
            signal.signal(signum, previous if previous is not None else signal.SIG_DFL)
        self._previous_handlers.clear()
        if sys.excepthook is self._excepthook:
            sys.excepthook = self._previous_excepthook
        atexit.unregister(self._exit_hook)
        self._installed = False
        logger.debug("Termination guard removed")

    def wait(self, timeout: float | None = None) -> int | None:
        """Block until a termination signal arrives.

        Args:
            timeout: Seconds to wait; None waits indefinitely

        Returns:
            The signal number, or None if the timeout elapsed first
        """
        if timeout is not None:
            self._event.wait(timeout)
        else:
            while not self._event.wait(_WAIT_INTERVAL):
                pass
        return self._received

    def _on_signal(self, signum: int, frame: FrameType | None) -> None:
        if self._received is None:
            self._received = signum
        self._event.set()

    def _on_unhandled_exception(
        self,
        exc_type: type[BaseException],
        exc: BaseException,
        tb: TracebackType | None,
    ) -> None:
        if not self._session.torn_down:
            click.echo(
                f"Unhandled {exc_type.__name__}, cleaning up Terraform...", err=True
            )
            self._session.teardown_quietly()
        previous = self._previous_excepthook or sys.__excepthook__
        previous(exc_type, exc, tb)

    def _on_exit(self) -> None:
        self._session.teardown_quietly()

    def __enter__(self) -> TerminationGuard:
        self.install()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        # Handlers stay installed until destroy returns.
        try:
            self._session.teardown_quietly()
        finally:
            self.uninstall()


class LifecycleController:
    """Deploy and undeploy Terraform configurations.

    Failures before apply succeeds leave the controller in
    ``LifecycleState.FAILED`` with ``failed_stage`` set and nothing to tear
    down. Once apply succeeds, ``session`` holds the live deployment even if
    reading outputs fails afterwards, so the caller can still tear it down.
    """

    def __init__(
        self,
        runner: TerraformRunner | None = None,
        workspaces: WorkspaceManager | None = None,
    ) -> None:
        """Initialize the controller.

        Args:
            runner: Terraform runner (default: ``terraform`` on PATH)
            workspaces: Workspace manager (default: system temp root)
        """
        self.runner = runner or TerraformRunner()
        self.workspaces = workspaces or WorkspaceManager()
        self.session: DeploymentSession | None = None
        self.failed_stage: LifecycleStage | None = None
        self._state = LifecycleState.IDLE

    @property
    def state(self) -> LifecycleState:
        """Current lifecycle state."""
        if self.session is not None:
            return self.session.state
        return self._state

    def _transition(self, state: LifecycleState) -> None:
        logger.debug(f"Lifecycle: {self._state.value} -> {state.value}")
        self._state = state

    @contextmanager
    def _stage(self, stage: LifecycleStage) -> Generator[None, None, None]:
        try:
            yield
        except AtarError:
            self.failed_stage = stage
            self._transition(LifecycleState.FAILED)
            logger.debug(f"Lifecycle failed during {stage.value}")
            raise

    def _prepare(self, request: DeploymentRequest) -> Workspace:
        with self._stage(LifecycleStage.PREFLIGHT):
            self.runner.ensure_installed()

        self._transition(LifecycleState.PREPARING)
        with self._stage(LifecycleStage.PREPARING):
            return self.workspaces.prepare(request.source_dir)

    def deploy(
        self,
        request: DeploymentRequest,
        on_deployed: Callable[[DeploymentSession], object] | None = None,
    ) -> tuple[OutputSet, DeploymentSession]:
        """Apply a configuration and return its outputs with a teardown handle.

        Args:
            request: What to deploy
            on_deployed: Called with the new session as soon as apply
                succeeds, before outputs are read. Use it to arm a
                TerminationGuard so an interrupt while reading outputs still
                destroys. If the callback itself raises, the session is torn
                down before the error propagates.

        Returns:
            Tuple of (outputs, session). The session must be torn down by the
            caller, directly or through a TerminationGuard.

        Raises:
            ToolNotInstalledError: Preflight failed; nothing was touched
            WorkspaceError: The working copy could not be prepared
            ToolLaunchError: Terraform could not be started
            ToolExecutionError: init, apply or output exited nonzero
            OutputDecodeError: Outputs were malformed; ``self.session`` is live
        """
        if self.session is not None and not self.session.torn_down:
            raise RuntimeError("A deployment is already live on this controller")

        workspace = self._prepare(request)
        working_dir = workspace.working_dir

        self._transition(LifecycleState.INITIALIZING)
        with self._stage(LifecycleStage.INITIALIZING):
            self.runner.init(working_dir, verbose=request.verbose)

        self._transition(LifecycleState.APPLYING)
        with self._stage(LifecycleStage.APPLYING):
            self.runner.apply(working_dir, request.variables, verbose=request.verbose)

        self._transition(LifecycleState.DEPLOYED)
        session = DeploymentSession(request, workspace, self.runner)
        self.session = session

        if on_deployed is not None:
            try:
                on_deployed(session)
            except BaseException:
                session.teardown_quietly()
                raise

        raw = self.runner.output_json(working_dir, verbose=request.verbose)
        outputs = decode_outputs(raw)
        logger.debug(f"Deployed {request.source_path} with {len(outputs)} outputs")
        return outputs, session

    def undeploy(self, request: DeploymentRequest) -> None:
        """Destroy a configuration without a prior deploy in this process.

        Reuses the cached working copy for the source (or makes a fresh one),
        then runs ``terraform destroy -auto-approve``.

        Raises:
            AtarError: On any stage failure; nothing is retried
        """
        workspace = self._prepare(request)

        self._transition(LifecycleState.DESTROYING)
        with self._stage(LifecycleStage.DESTROYING):
            self.runner.destroy(
                workspace.working_dir, request.variables, verbose=request.verbose
            )
        self._transition(LifecycleState.TORN_DOWN)
