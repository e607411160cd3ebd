# taskboard: personal task board with email notifications
#
# Components:
#   schema.py      - Data model (Task, TaskStatus, TaskPriority, UserSession)
#   storage.py     - SQLite key/value store (the local storage slots)
#   store.py       - Per-user task collection
#   board.py       - Column projection and drag-and-drop controller
#   preferences.py - Notification preference gate
#   notify.py      - Task events → workflow triggers
#   client.py      - HTTP client for the backend proxy
#   session.py     - Sign-up / sign-in and the current session
#   server.py      - Flask backend proxying to SuprSend
#   cli.py         - Command-line client
