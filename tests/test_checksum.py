"""
Tests for checksum verification.
"""

import hashlib
import subprocess

import pytest

from gobuild.download.checksum import ChecksumVerifier, CommandDigest, HashlibDigest
from gobuild.download.interfaces import DigestAlgorithm, DigestBackend
from gobuild.exceptions import UnsupportedChecksumLength

pytestmark = [pytest.mark.unit, pytest.mark.core_downloads]

CONTENT = b"go release contents\n"


class _NoDigests(DigestBackend):
    name = "none"

    def supports(self, algorithm):
        return False

    def hexdigest(self, algorithm, path):
        raise AssertionError("should not be called")


@pytest.fixture
def artifact(tmp_path):
    path = tmp_path / "go.tar.gz"
    path.write_bytes(CONTENT)
    return path


class TestChecksumVerifier:
    """Test ChecksumVerifier with the hashlib backend."""

    @pytest.mark.parametrize("name", ["md5", "sha1", "sha256"])
    def test_matching_digest_passes(self, artifact, name):
        verifier = ChecksumVerifier([HashlibDigest()])
        expected = hashlib.new(name, CONTENT).hexdigest()
        assert verifier.verify(artifact, expected) is True

    def test_uppercase_digest_passes(self, artifact):
        verifier = ChecksumVerifier([HashlibDigest()])
        expected = hashlib.sha256(CONTENT).hexdigest().upper()
        assert verifier.verify(artifact, expected) is True

    def test_wrong_digest_fails(self, artifact):
        verifier = ChecksumVerifier([HashlibDigest()])
        assert verifier.verify(artifact, "0" * 64) is False

    def test_empty_digest_always_passes(self, artifact, tmp_path):
        verifier = ChecksumVerifier([HashlibDigest()])
        assert verifier.verify(artifact, "") is True
        assert verifier.verify(tmp_path / "missing", "") is True

    def test_missing_file_fails(self, tmp_path):
        verifier = ChecksumVerifier([HashlibDigest()])
        assert verifier.verify(tmp_path / "missing", "0" * 64) is False

    @pytest.mark.parametrize("length", [1, 31, 33, 56, 128])
    def test_unsupported_length(self, artifact, length):
        verifier = ChecksumVerifier([HashlibDigest()])
        with pytest.raises(UnsupportedChecksumLength):
            verifier.verify(artifact, "a" * length)

    def test_algorithm_selected_by_length(self):
        assert ChecksumVerifier.algorithm_for("a" * 32) is DigestAlgorithm.MD5
        assert ChecksumVerifier.algorithm_for("a" * 40) is DigestAlgorithm.SHA1
        assert ChecksumVerifier.algorithm_for("a" * 64) is DigestAlgorithm.SHA256
        assert ChecksumVerifier.algorithm_for("") is None

    def test_no_backend_skips_verification(self, artifact):
        verifier = ChecksumVerifier([_NoDigests()])
        assert verifier.available is False
        assert verifier.can_verify("0" * 64) is False
        assert verifier.verify(artifact, "0" * 64) is True

    def test_first_supporting_backend_is_used(self, artifact, mocker):
        first = mocker.MagicMock(spec=DigestBackend)
        first.supports.return_value = True
        first.hexdigest.return_value = "b" * 64
        second = mocker.MagicMock(spec=DigestBackend)
        second.supports.return_value = True

        verifier = ChecksumVerifier([first, second])

        assert verifier.verify(artifact, "b" * 64) is True
        second.hexdigest.assert_not_called()

    def test_backends_probed_once(self, artifact, mocker):
        backend = mocker.MagicMock(spec=DigestBackend)
        backend.supports.return_value = True
        backend.hexdigest.return_value = "c" * 64
        verifier = ChecksumVerifier([backend])
        probes = backend.supports.call_count

        verifier.verify(artifact, "c" * 64)
        verifier.verify(artifact, "c" * 64)

        assert backend.supports.call_count == probes == len(DigestAlgorithm)


class TestCommandDigest:
    """Test the command-line digest backend."""

    def test_unavailable_tools(self, mocker):
        mocker.patch("gobuild.download.checksum.shutil.which", return_value=None)
        backend = CommandDigest()
        assert not any(backend.supports(a) for a in DigestAlgorithm)

    def test_parses_openssl_output(self, artifact, mocker):
        mocker.patch(
            "gobuild.download.checksum.shutil.which", return_value="/usr/bin/openssl"
        )
        digest = hashlib.sha256(CONTENT).hexdigest()
        run = mocker.patch(
            "gobuild.download.checksum.subprocess.run",
            return_value=subprocess.CompletedProcess(
                args=[], returncode=0, stdout=f"SHA2-256({artifact})= {digest}\n"
            ),
        )

        backend = CommandDigest()
        assert backend.hexdigest(DigestAlgorithm.SHA256, artifact) == digest
        assert run.call_args[0][0][:3] == ["openssl", "dgst", "-sha256"]

    def test_parses_sha256sum_output(self, artifact, mocker):
        mocker.patch(
            "gobuild.download.checksum.shutil.which",
            side_effect=lambda name: "/usr/bin/sha256sum" if name == "sha256sum" else None,
        )
        digest = hashlib.sha256(CONTENT).hexdigest()
        mocker.patch(
            "gobuild.download.checksum.subprocess.run",
            return_value=subprocess.CompletedProcess(
                args=[], returncode=0, stdout=f"{digest.upper()}  {artifact}\n"
            ),
        )

        backend = CommandDigest()
        assert backend.supports(DigestAlgorithm.SHA256)
        assert not backend.supports(DigestAlgorithm.MD5)
        assert backend.hexdigest(DigestAlgorithm.SHA256, artifact) == digest

    def test_command_failure_reads_as_mismatch(self, artifact, mocker):
        mocker.patch(
            "gobuild.download.checksum.shutil.which", return_value="/usr/bin/openssl"
        )
        mocker.patch(
            "gobuild.download.checksum.subprocess.run",
            side_effect=subprocess.CalledProcessError(1, ["openssl"]),
        )
        verifier = ChecksumVerifier([CommandDigest()])
        assert verifier.verify(artifact, hashlib.sha256(CONTENT).hexdigest()) is False
