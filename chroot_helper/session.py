from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Protocol, Sequence

from .context import SessionContext
from .teardown import teardown

logger = logging.getLogger(__name__)


class Step(Protocol):
    """A single step of the chroot session."""

    step_id: str

    def run(self, ctx: SessionContext) -> None:
        ...


@dataclass(frozen=True)
class SessionResult:
    ran_steps: List[str]
    chroot_returncode: Optional[int]


def run_session(*, ctx: SessionContext, steps: Sequence[Step]) -> SessionResult:
    """Run steps in order, then tear down whatever they acquired.

    Teardown also runs when a step raises, so resources opened before a
    fatal error are still released.
    """

    ran: List[str] = []
    try:
        for step in steps:
            logger.debug("Running step %s", step.step_id)
            step.run(ctx)
            ran.append(step.step_id)
    finally:
        teardown(ctx)

    return SessionResult(ran_steps=ran, chroot_returncode=ctx.chroot_returncode)
