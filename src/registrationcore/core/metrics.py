"""
Prometheus metrics
"""

from prometheus_client import Counter, Histogram

registrations_total = Counter(
    'registrationcore_registrations_total', 'Patient registrations', ['status']
)
registration_duration = Histogram(
    'registrationcore_registration_duration_seconds', 'Patient registration duration'
)
similar_patient_searches_total = Counter(
    'registrationcore_similar_patient_searches_total', 'Similar patient searches', ['mode']
)
similar_patient_matches = Histogram(
    'registrationcore_similar_patient_matches', 'Candidates returned per similar patient search', ['mode'],
    buckets=(0, 1, 2, 5, 10, 20, 50)
)
remote_index_requests_total = Counter(
    'registrationcore_remote_index_requests_total', 'Remote index calls', ['operation', 'status']
)
biometric_operations_total = Counter(
    'registrationcore_biometric_operations_total', 'Biometric enrollment operations', ['operation']
)
