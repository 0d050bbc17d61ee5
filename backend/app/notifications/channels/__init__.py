"""
channels — Per-channel request adapters.

Each adapter module exposes:
    build_request(target, ...) → PushRequest | EmailRequest | SmsRequest

Adapters are pure functions. Network I/O lives in ``notifications.senders``
and the decision of *whether* to send lives in ``dispatcher``.
"""
