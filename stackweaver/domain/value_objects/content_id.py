from dataclasses import dataclass


@dataclass(frozen=True)
class ContentId:
    """
    Value Object naming a template for the execution engine.
    The engine caches by this value, so the format must stay stable.
    """
    value: str

    def __post_init__(self):
        if not self.value:
            raise ValueError("Content ID cannot be empty")

    @staticmethod
    def for_bootstrap(provider: str, group_name: str, identifier: str) -> "ContentId":
        return ContentId(f"{provider}-{group_name}-{identifier}")

    @staticmethod
    def for_stack(username: str, template_id: str) -> "ContentId":
        return ContentId(f"{username}-{template_id}")

    def __str__(self):
        return self.value
