"""Client insights processing -- normalization, analysis backends, orchestration.

Turns heterogeneous advisor/client communications into EnhancedInsights via
one of three interchangeable backends (rule-based, local NLP, remote LLM)
behind ProcessingManager, which owns retry, timeout and rule-based fallback.
"""
