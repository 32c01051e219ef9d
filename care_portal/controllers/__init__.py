"""
Request controllers for the care portal.

Controllers are independent of Flask request handling: they take plain data
and a :class:`.SessionStore`, and return ``(data, status code, headers)``
tuples that the routes turn into responses. The kiosk CLI calls the same
functions.
"""
