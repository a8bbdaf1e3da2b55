from . import abandon, add, bind, compare, delete, modify, modifydn, search  # noqa: F401
from .base import (  # noqa: F401
    Scenario,
    ScenarioState,
    accept_either,
    expect_rejection,
    expect_success,
)
