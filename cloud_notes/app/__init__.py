"""QML-facing application facade and state objects.

- Single command entry: backend.dispatch(cmd, payload)
- UI binding via state QObjects (backend.userData)
- Backend completions are redelivered to the Qt main thread before touching state
"""
