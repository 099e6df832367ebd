"""
Sunrise alarm scheduling and interaction handling

This package arms a one-shot notification at tomorrow's sunrise and reacts to
the Stop and Snooze actions a user takes on it:

- Notifications: one-shot local triggers, channels, categories and user actions
- Scheduling: tracked notification ids with replace, snooze and cancel
- Actions: decoding action identifiers and dispatching them to the scheduler
- App: composition root owning settings, sun times, weather cache and routing

Key modules:
- notifications: NotificationService protocol and LocalNotificationService
- scheduler: AlarmScheduler and the persisted id record
- actions: ActionRouter and the AlarmAction variants
- app: SunriseApp lifecycle, toggle and location flows
"""
