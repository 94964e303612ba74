'''
Quota Gate Test Suite

Test Modules:
-------------
- test_quota_validation.py: sum-to-target validation, COUNT <-> PERCENTAGE
  conversion (including round trips), edit helpers, normalization
- test_screening.py: screening synthesis over full bucket universes,
  question text preservation, regeneration fixed point
- test_quota_payload.py: persisted document and update payload translation
- test_vendor_allocation.py: vendor question classification, allocation sums,
  blocking messages, criteria edits
- test_quota_oracle.py: survey API client against a scripted MockTransport
- test_qualification.py: respondent protocol end to end
- test_publication.py: public link fallback and last-survey hand-off
- test_api.py: router contracts via FastAPI TestClient

Running Tests:
--------------
    pip install -e ".[test]"
    pytest -v

Configuration:
--------------
See conftest.py for shared fixtures and fakes.py for the fake survey API.
'''

__all__ = []
