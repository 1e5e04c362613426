"""
Bike-share station feature: live status and history from the remote store,
station metadata from the TfL feed.
"""
