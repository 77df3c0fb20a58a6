"""
Core timer package for FocusLedger.

Contains the headless TimerEngine (core.timer_engine), its settings and
scheduling substrate, and the StudyController (core.controller) that ties
it to the topic ledger. Zero UI dependencies.
"""
