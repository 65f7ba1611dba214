"""Client-side session engine for automated Bedrock server bots.

Each bot keeps a local mirror of what the server has told it (position,
inventory, open menus), stays connected across kicks and maintenance
windows, and can run menu workflows that infer their progress from window
contents and system text alone.

Structure:
- shopbot/bot/: Domain code (session, connection, mirror, workflows)
  - session.py: BotSession, the per-bot owner of all state
  - connection.py: Reconnect policy and emergency reconnect
  - windows.py: Window and inventory mirror
  - text.py: Text normalization and classification
  - workflow.py: Auto-buy state machine and menu classifiers
  - afk.py: AFK menu flow
  - actions.py: Outbound request builders
  - config.py: Configuration via pydantic-settings

- shopbot/lib/: Parametric utilities
  - scheduler.py: Named, cancellable timers
  - retry.py: Retry decorator for connection setup
"""
