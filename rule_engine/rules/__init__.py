"""
Rule model and evaluation.

Modules of interest:
- models: Rule, Condition and Action definitions plus their config schema.
- operators: Operator table and multi-value combining used by every condition.
- placeholders: ``{category:path}`` substitution from the context.
- handlers: Type-name registry of condition/action factories.
- engine: One evaluation pass over a list of rules.
- builder: Fluent construction and registration of rules.

Condition and action failures are contained per handler and never escape
an evaluation pass.
"""
