import sys
from pathlib import Path

import pytest

# Add project root and tests dir to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))
sys.path.insert(0, str(Path(__file__).parent))

from support import FakeClock  # noqa: E402


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def tracer(clock):
    from observability.tracer import ExecutionTracer
    return ExecutionTracer(clock=clock)


@pytest.fixture
def optimizer(clock):
    from orchestration.optimizer import AgentChainOptimizer
    opt = AgentChainOptimizer(clock=clock)
    yield opt
    opt.dispose()
