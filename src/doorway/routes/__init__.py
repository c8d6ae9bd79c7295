"""Built-in sub-routers mounted by the pipeline.

``health`` reports the activity monitor's state; ``apps`` lists the
applications contributed by loaded plugins.
"""
