"""modelrouter - rule-based model routing with cost and budget control.

Modules:
    - config: Typed router configuration, validation and the YAML loader cache
    - routing: Rule scoring, provider/model selection and privacy policy
    - price: Token and cost estimation against model price tables
    - budget: Persistent spend log with daily/monthly budget enforcement
    - engine: Query surface tying routing, pricing and budget together
    - web: HTTP API exposing the query surface
    - cli: Command-line interface
"""

__version__ = "0.3.0"
