"""
Proof-of-work gate tests
"""
import pytest

from fieldops.errors import InvalidStatus, JobNotFound, NotYourJob, ValidationError
from fieldops.models import ProofRecord

BOX_URL = 'https://cdn.example.com/box.jpg'
FINISHED_URL = 'https://cdn.example.com/finished.jpg'


class TestSubmit:
    """Test uploading proof photos"""

    def test_incomplete_until_both_types(self, service, started, agent):
        assert not service.proofs.is_complete(started.id)

        service.submit_proof(started.id, agent.id, 'box', BOX_URL)
        assert not service.proofs.is_complete(started.id)
        assert service.proofs.missing(started.id) == ['finished']

        service.submit_proof(started.id, agent.id, 'finished', FINISHED_URL)
        assert service.proofs.is_complete(started.id)
        assert service.proofs.missing(started.id) == []

    def test_resubmit_replaces_photo(self, service, started, agent):
        service.submit_proof(started.id, agent.id, 'box', BOX_URL)
        service.submit_proof(started.id, agent.id, 'box', 'https://cdn.example.com/box-2.jpg', notes='retake')

        records = ProofRecord.query.filter_by(assignment_id=started.id).all()
        assert len(records) == 1
        assert records[0].photo_url == 'https://cdn.example.com/box-2.jpg'
        assert records[0].notes == 'retake'

    def test_upload_allowed_before_check_in(self, service, assignment, agent):
        record = service.submit_proof(assignment.id, agent.id, 'box', BOX_URL)
        assert record.type == 'box'

    def test_unknown_type_rejected(self, service, started, agent):
        with pytest.raises(ValidationError):
            service.submit_proof(started.id, agent.id, 'selfie', BOX_URL)

    def test_photo_url_required(self, service, started, agent):
        with pytest.raises(ValidationError):
            service.submit_proof(started.id, agent.id, 'box', '')

    def test_other_agent_cannot_upload(self, service, started, agent_factory):
        stranger = agent_factory()
        with pytest.raises(NotYourJob):
            service.submit_proof(started.id, stranger.id, 'box', BOX_URL)

    def test_unknown_assignment(self, service, agent):
        with pytest.raises(JobNotFound):
            service.submit_proof('missing', agent.id, 'box', BOX_URL)

    def test_no_upload_after_checkout(self, service, checked_out, agent):
        with pytest.raises(InvalidStatus):
            service.submit_proof(checked_out.id, agent.id, 'box', BOX_URL)

    def test_list_for_assignment(self, service, proofed, agent):
        types = {p.type for p in service.proofs_for(proofed.id, agent.id)}
        assert types == {'box', 'finished'}
