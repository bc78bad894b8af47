"""
Property names, event keys and other shared constants
"""

# Runtime properties held in the property store
GP_IDENTIFIER_SOURCE_ID = "registrationcore.identifierSourceId"
GP_FAST_SIMILAR_PATIENT_SEARCH_ALGORITHM = "registrationcore.fastSimilarPatientSearchAlgorithm"
GP_PRECISE_SIMILAR_PATIENT_SEARCH_ALGORITHM = "registrationcore.preciseSimilarPatientSearchAlgorithm"
GP_PATIENT_NAME_SEARCH = "registrationcore.patientNameSearch"

# Default strategy bindings
BASIC_SIMILAR_PATIENT_SEARCH_ALGORITHM = "registrationcore.BasicSimilarPatientSearchAlgorithm"
BASIC_EXACT_PATIENT_SEARCH_ALGORITHM = "registrationcore.BasicExactPatientSearchAlgorithm"
BASIC_PATIENT_NAME_SEARCH = "registrationcore.BasicPatientNameSearch"

# Registration event
PATIENT_REGISTRATION_EVENT_TOPIC_NAME = "org.openmrs.module.registrationcore.RegistrationEvent"
KEY_PATIENT_UUID = "patientUuid"
KEY_REGISTERER_UUID = "registererUuid"
KEY_REGISTERER_ID = "registererId"
KEY_DATE_REGISTERED = "dateRegistered"
KEY_WAS_A_PERSON = "wasAPerson"
KEY_RELATIONSHIP_UUIDS = "relationshipUuids"

# yyyy-MM-dd HH:mm:ss:SSS Z
DATE_FORMAT_STRING = "%Y-%m-%d %H:%M:%S:{millis:03d} %z"

LOCATION_TAG_IDENTIFIER_ASSIGNMENT_LOCATION = "Identifier Assignment Location"
