"""Provider collaborator interface.

The router never talks to a model endpoint itself. It only needs three
answers from each provider: its id, whether it serves a model, and whether
it is reachable right now. ``is_available()`` may do network I/O, so it is
a coroutine and the router treats it as a boundary call.
"""

from typing import Protocol, runtime_checkable

from modelrouter.config.models import ProfileConfig, ProviderConfig


@runtime_checkable
class Provider(Protocol):
    """What the router needs from a model provider client."""

    def id(self) -> str: ...

    def supports(self, model: str) -> bool: ...

    async def is_available(self) -> bool: ...


class StaticProvider:
    """Config-backed provider with a fixed availability flag.

    Serves exactly the models declared in its ProviderConfig. Used where no
    live client exists (planning from the CLI or HTTP API, tests).
    """

    def __init__(self, config: ProviderConfig, available: bool = True):
        self.config = config
        self.available = available
        self.availability_checks = 0

    def id(self) -> str:
        return self.config.id

    def supports(self, model: str) -> bool:
        return self.config.get_model(model) is not None

    async def is_available(self) -> bool:
        self.availability_checks += 1
        return self.available

    def __repr__(self) -> str:
        return f"StaticProvider({self.config.id!r}, available={self.available})"


def providers_from_profile(
    profile: ProfileConfig,
    unavailable: set[str] | None = None,
) -> dict[str, Provider]:
    """Build a StaticProvider for every provider in ``profile``.

    Args:
        profile: Profile whose providers to wrap.
        unavailable: Provider ids to report as unavailable.
    """
    unavailable = unavailable or set()
    return {
        p.id: StaticProvider(p, available=p.id not in unavailable)
        for p in profile.providers
    }
