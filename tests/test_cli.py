import nibabel as nib
import numpy as np
import pytest

from lotus_viewer import cli, config


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path, monkeypatch):
    monkeypatch.setattr(config, "SETTINGS_FILE", tmp_path / "settings.json")


def _write_nifti(path, data, spacing=(2.0, 2.0, 2.0)):
    affine = np.diag([spacing[0], spacing[1], spacing[2], 1.0])
    nib.save(nib.Nifti1Image(np.asarray(data, dtype=np.float32), affine), str(path))
    return str(path)


def test_render_writes_three_planes(tmp_path, capsys):
    background = _write_nifti(tmp_path / "bg.nii.gz", np.random.default_rng(1).random((6, 7, 8)))
    overlay = _write_nifti(tmp_path / "map.nii", np.linspace(-1, 1, 336).reshape(6, 7, 8))
    out_dir = tmp_path / "out"

    status = cli.main(
        ["render", "--background", background, "--overlay", overlay,
         "--cursor", "1", "2", "3", "--out-dir", str(out_dir)]
    )

    assert status == 0
    assert sorted(p.name for p in out_dir.iterdir()) == ["axial.png", "coronal.png", "sagittal.png"]
    assert "Cursor (1, 2, 3)" in capsys.readouterr().out


def test_render_reports_decode_failures(tmp_path, capsys):
    broken = tmp_path / "broken.nii"
    broken.write_bytes(b"\x00" * 400)

    status = cli.main(["render", "--background", str(broken), "--out-dir", str(tmp_path)])

    assert status == 1
    assert "Background: Could not decode volume" in capsys.readouterr().err


def test_render_without_source_is_a_usage_error():
    with pytest.raises(SystemExit):
        cli.main(["render"])


def test_info_prints_summary(tmp_path, capsys):
    path = _write_nifti(tmp_path / "vol.nii", np.zeros((91, 109, 91)))
    assert cli.main(["info", path]) == 0
    out = capsys.readouterr().out
    assert "91x109x91" in out
    assert "True" in out
