from relay.models.turn import Role, Turn

__all__ = ["Role", "Turn"]
