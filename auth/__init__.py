"""auth/ -- Authentication, session and profile-bootstrap package.

Layer rule: auth/ imports only stdlib + third-party libraries, plus
core.config for settings. It does NOT import from api/, web/, profiles/,
or cache/. api/ and web/ import from auth/, not the other way around.
"""
