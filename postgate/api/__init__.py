from postgate.api.app import create_app
from postgate.api.problems import to_problem

__all__ = ["create_app", "to_problem"]
