"""Update pipeline: release resolution, artifact download, and the
fixed-interval scheduler that ties them to the process supervisor.
"""
