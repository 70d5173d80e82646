from dataclasses import dataclass


@dataclass(slots=True)
class Principal:
    subject: str
    scopes: set[str]
    role: str | None = None

    @property
    def user_id(self) -> str:
        return self.subject

    def require_scopes(self, required: set[str]) -> None:
        missing = required - self.scopes
        if missing:
            raise PermissionError(f"missing required scopes: {sorted(missing)}")
