# Cost Package
from cost.model_pricing import MODEL_PRICING, ModelPricing
from cost.estimator import estimate_step_cost

__all__ = ["MODEL_PRICING", "ModelPricing", "estimate_step_cost"]
