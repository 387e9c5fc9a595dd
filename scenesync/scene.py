"""
Scene snapshots pushed to the rendering engine.

The component tree itself is produced by an external UI runtime.  It plugs in
through :class:`SceneTree`: the runtime mounts against an output context,
reports changes through ``ctx.scene_changed()`` and renders the already
diffed video root on request.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Dict, Iterable, List, Optional

from .mixer import MixerInput
from .refs import encode_ref

if TYPE_CHECKING:  # pragma: no cover - typing aid
    from .context import OutputContext

EMPTY_VIEW: Dict[str, Any] = {"type": "view", "children": []}


class SceneTree:
    """Boundary to the UI runtime that owns the component tree."""

    def mount(self, ctx: "OutputContext") -> None:
        pass

    def unmount(self) -> None:
        pass

    def render(self, ctx: "OutputContext") -> Dict[str, Any]:
        raise NotImplementedError


class StaticScene(SceneTree):
    def __init__(self, root: Dict[str, Any]) -> None:
        self.root = root

    def render(self, ctx: "OutputContext") -> Dict[str, Any]:
        return self.root


class CallableScene(SceneTree):
    """Scene rendered by a plain function of the output context."""

    def __init__(
        self,
        render: Callable[["OutputContext"], Dict[str, Any]],
        *,
        on_mount: Optional[Callable[["OutputContext"], None]] = None,
    ) -> None:
        self._render = render
        self._on_mount = on_mount

    def mount(self, ctx: "OutputContext") -> None:
        if self._on_mount is not None:
            self._on_mount(ctx)

    def render(self, ctx: "OutputContext") -> Dict[str, Any]:
        return self._render(ctx)


class OutputRoot:
    """
    Root of one output's tree.

    After :meth:`shutdown` the root renders an empty view, so any push racing
    with teardown carries a neutral scene.
    """

    def __init__(self, tree: SceneTree, ctx: "OutputContext") -> None:
        self.tree = tree
        self.ctx = ctx
        self._shutdown = False
        self._mounted = False

    @property
    def is_shutdown(self) -> bool:
        return self._shutdown

    def mount(self) -> None:
        if self._mounted:
            return
        self._mounted = True
        self.tree.mount(self.ctx)

    def shutdown(self) -> None:
        if self._shutdown:
            return
        self._shutdown = True
        if self._mounted:
            self._mounted = False
            self.tree.unmount()

    def scene(self) -> Dict[str, Any]:
        if self._shutdown:
            return dict(EMPTY_VIEW)
        return self.tree.render(self.ctx)


@dataclass(frozen=True)
class SceneSnapshot:
    video: Optional[Dict[str, Any]] = None
    audio: Optional[Dict[str, Any]] = None
    schedule_time_ms: Optional[float] = None

    def to_request(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {}
        if self.video is not None:
            body["video"] = self.video
        if self.audio is not None:
            body["audio"] = self.audio
        if self.schedule_time_ms is not None:
            body["schedule_time_ms"] = self.schedule_time_ms
        return body


def into_audio_inputs_configuration(inputs: Iterable[MixerInput]) -> Dict[str, List[Dict[str, Any]]]:
    return {
        "inputs": [
            {"input_id": encode_ref(item.ref), "volume": item.volume}
            for item in inputs
        ]
    }
