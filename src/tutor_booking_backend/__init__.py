'''
Appointment scheduling engine for a tutoring marketplace.
'''
