"""
Pytest fixtures for mdviewer tests.

Fixtures are organized by test category:
- remote.py: ScriptedConnection, RecordingNotifier, targets
- watcher.py: Local and remote watcher fixtures
"""
