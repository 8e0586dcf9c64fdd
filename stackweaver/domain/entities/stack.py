from dataclasses import dataclass


@dataclass(frozen=True)
class StackTemplate:
    """A stored, user-authored infrastructure template."""
    id: str
    content: str
    title: str = ""

    def __post_init__(self):
        if not self.id:
            raise ValueError("Stack template ID cannot be empty")


@dataclass(frozen=True)
class StackRecord:
    """A built stack: its template and the credentials bound to it."""
    id: str
    template_id: str
    group_name: str = ""
    owner: str = ""
    credentials: tuple[str, ...] = ()

    def __post_init__(self):
        if not self.id:
            raise ValueError("Stack ID cannot be empty")
