"""
notifications — Citizen notification fan-out engine.

Sub-modules:
    models        — Data structures shared across the engine
    quiet_hours   — Per-subscriber, timezone-local quiet-hours evaluation
    registry      — Subscription registry (subscribe / unsubscribe / preferences)
    channels/     — Per-channel request adapters (push, email, SMS)
    templates     — Notification content (push, HTML email, SMS text)
    senders       — Outbound provider clients (FCM, Resend, Twilio)
    tracker       — Append-only delivery ledger + statistics
    dispatcher    — Per-incident progress-update and resolution fan-out
    broadcaster   — Region-wide emergency push
    sweeper       — Retention housekeeping
    service       — Facade wiring the above together
"""
