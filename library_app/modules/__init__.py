# Library Attendance & Mail Service - Modules Package
"""
Core business logic modules of the library service: the student directory,
the attendance recorder, the mailer and its SMTP transport, attendance
export and ID card rendering.
"""
