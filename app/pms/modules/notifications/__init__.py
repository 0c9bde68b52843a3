"""
Notifications: per-user in-process store plus WebSocket push.

Single process only. Notifications expire after NOTIFICATION_TTL and are lost
on restart.
"""
