# Orchestration Package
# Import from submodules directly: orchestration.optimizer, orchestration.planner
