"""Outbound HTTP clients."""

from fusionn_subs.http.callback import CallbackClient, CallbackError, CallbackPayload

__all__ = ["CallbackClient", "CallbackError", "CallbackPayload"]
