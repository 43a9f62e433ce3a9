"""
Shared test fixtures for the epiwalk test suite.
"""

import gzip
from unittest.mock import MagicMock

import pandas as pd
import pyBigWig
import pytest

from epiwalk.config import Settings
from epiwalk.core.annotation import genepred_to_transcripts, transcripts_to_models

# ============================================================================
# Interval tables
# ============================================================================


@pytest.fixture
def signal_intervals():
    """Three signal intervals on chrX and two on chr1."""
    return pd.DataFrame({
        "chr": ["chrX", "chr1", "chrX", "chr1", "chrX"],
        "start": [100, 100, 400, 900, 1500],
        "end": [200, 300, 600, 1000, 1600],
        "strand": ["*"] * 5,
        "score": [0.1, 0.9, 0.5, 0.3, 0.8],
    })


@pytest.fixture
def broadpeak_intervals():
    """Peaks in the broadPeak layout after import."""
    return pd.DataFrame({
        "chr": ["chrX", "chrX", "chr11"],
        "start": [1000, 5000, 2000],
        "end": [2000, 6000, 3000],
        "name": ["peak_0", "peak_1", "peak_2"],
        "score": [500.0, 300.0, 100.0],
        "strand": ["*", "*", "*"],
        "signalValue": [12.5, 4.0, 7.2],
        "pValue": [8.1, 3.2, 5.0],
        "qValue": [6.0, 2.1, 4.4],
    })


@pytest.fixture
def promoter_windows():
    """Two 1000-bp windows, one per strand, with the TSS 500 bp in."""
    return pd.DataFrame({
        "chr": ["chrX", "chrX"],
        "start": [1000, 5000],
        "end": [2000, 6000],
        "strand": ["+", "-"],
        "gene_id": ["G1", "G2"],
        "gene_name": ["G1", "G2"],
        "tss": [1500, 5499],
    })


# ============================================================================
# Files
# ============================================================================


@pytest.fixture
def bigwig_file(tmp_path):
    """Small bigWig with two chromosomes."""
    path = tmp_path / "E003_RRBS_FractionalMethylation.bigwig"
    bw = pyBigWig.open(str(path), "w")
    bw.addHeader([("chr1", 10000), ("chrX", 20000)])
    bw.addEntries(["chr1", "chr1"], [100, 900], ends=[300, 1000], values=[0.9, 0.3])
    bw.addEntries(["chrX", "chrX", "chrX"], [1100, 1400, 5200], ends=[1200, 1600, 5300], values=[0.2, 0.6, 0.8])
    bw.close()
    return path


@pytest.fixture
def broadpeak_file(tmp_path):
    """Gzipped broadPeak file with peaks on chrX and chr1."""
    path = tmp_path / "E003-H3K4me3.broadPeak.gz"
    lines = [
        "chrX\t1300\t1800\tpeak_0\t500\t.\t12.5\t8.1\t6.0",
        "chrX\t5100\t5600\tpeak_1\t300\t.\t4.0\t3.2\t2.1",
        "chr1\t200\t800\tpeak_2\t100\t.\t7.2\t5.0\t4.4",
    ]
    with gzip.open(path, "wt") as f:
        f.write("\n".join(lines) + "\n")
    return path


@pytest.fixture
def genepred_file(tmp_path):
    """refGene-style dump (16 columns, with bin)."""
    path = tmp_path / "refGene.txt.gz"
    rows = [
        # bin name chrom strand txStart txEnd cdsStart cdsEnd exonCount exonStarts exonEnds score name2 ...
        ["0", "NM_001", "chrX", "+", "1500", "3000", "1600", "2900", "2", "1500,2500,", "1800,3000,", "0", "G1", "cmpl", "cmpl", "0,0,"],
        ["0", "NM_002", "chrX", "-", "4000", "5500", "4100", "5400", "2", "4000,5000,", "4300,5500,", "0", "G2", "cmpl", "cmpl", "0,0,"],
        ["0", "NM_003", "chr1", "+", "100", "900", "150", "850", "1", "100,", "900,", "0", "G3", "cmpl", "cmpl", "0,"],
    ]
    with gzip.open(path, "wt") as f:
        for row in rows:
            f.write("\t".join(row) + "\n")
    return path


@pytest.fixture
def gtf_file(tmp_path):
    """Minimal GTF with one two-exon transcript."""
    path = tmp_path / "genes.gtf"
    attrs = 'gene_id "G1"; transcript_id "T1"; gene_name "GENE1";'
    lines = [
        "#!genome-build test",
        "chrX\ttest\tgene\t1001\t3000\t.\t+\t.\tgene_id \"G1\"; gene_name \"GENE1\";",
        f"chrX\ttest\ttranscript\t1001\t3000\t.\t+\t.\t{attrs}",
        f"chrX\ttest\texon\t1001\t1500\t.\t+\t.\t{attrs}",
        f"chrX\ttest\texon\t2501\t3000\t.\t+\t.\t{attrs}",
    ]
    path.write_text("\n".join(lines) + "\n")
    return path


@pytest.fixture
def gff3_file(tmp_path):
    """GFF3 gene with two mRNAs sharing their first exon."""
    path = tmp_path / "genes.gff3"
    lines = [
        "##gff-version 3",
        "chrX\ttest\tgene\t1001\t4000\t.\t-\t.\tID=gene:G1;Name=GENE1",
        "chrX\ttest\tmRNA\t1001\t3000\t.\t-\t.\tID=transcript:T1;Parent=gene:G1;Name=GENE1-201",
        "chrX\ttest\tmRNA\t1001\t4000\t.\t-\t.\tID=transcript:T2;Parent=gene:G1;Name=GENE1-202",
        "chrX\ttest\texon\t1001\t1500\t.\t-\t.\tParent=transcript:T1,transcript:T2",
        "chrX\ttest\texon\t2501\t3000\t.\t-\t.\tParent=transcript:T1",
        "chrX\ttest\texon\t3501\t4000\t.\t-\t.\tParent=transcript:T2",
    ]
    path.write_text("\n".join(lines) + "\n")
    return path



@pytest.fixture
def metadata_file(tmp_path):
    """Roadmap-style metadata index."""
    path = tmp_path / "EID_metadata.tab"
    table = pd.DataFrame({
        "EID": ["E003", "E008", "E017", "E114"],
        "GROUP": ["ES", "ES", "IMR90", "ENCODE2012"],
        "STD_NAME": ["ES-H1 Cells", "ES-H9 Cells", "IMR90 fetal lung fibroblasts", "A549 EtOH 0.02pct Lung Carcinoma"],
    })
    table.to_csv(path, sep="\t", index=False)
    return path


# ============================================================================
# UCSC REST responses
# ============================================================================


def _ucsc_gene_rows():
    return [
        {"name": "NM_A1", "chrom": "chrX", "strand": "+", "txStart": 1500, "txEnd": 3000,
         "exonStarts": "1500,2500,", "exonEnds": "1800,3000,", "name2": "G1"},
        {"name": "NM_A2", "chrom": "chrX", "strand": "+", "txStart": 1600, "txEnd": 3200,
         "exonStarts": "1600,2900,", "exonEnds": "1800,3200,", "name2": "G1"},
        {"name": "NM_B1", "chrom": "chrX", "strand": "-", "txStart": 4000, "txEnd": 5500,
         "exonStarts": "4000,5000,", "exonEnds": "4300,5500,", "name2": "G2"},
    ]


def _ucsc_payload(params):
    track = params["track"]
    if track == "refGene":
        return {track: _ucsc_gene_rows()}
    if track == "cpgIslandExt":
        return {track: [
            {"chrom": "chrX", "chromStart": 1400, "chromEnd": 1700, "name": "CpG: 30"},
        ]}
    if track == "cytoBandIdeo":
        return {track: [
            {"chrom": "chrX", "chromStart": 0, "chromEnd": 10000, "name": "p11.1", "gieStain": "gneg"},
            {"chrom": "chrX", "chromStart": 10000, "chromEnd": 12000, "name": "p11", "gieStain": "acen"},
            {"chrom": "chrX", "chromStart": 12000, "chromEnd": 20000, "name": "q11", "gieStain": "gpos50"},
        ]}
    return {track: []}


@pytest.fixture
def ucsc_session():
    """requests.Session stand-in answering getData/track."""
    session = MagicMock()

    def _get(url, params=None, headers=None, timeout=None):
        response = MagicMock()
        response.raise_for_status.return_value = None
        response.json.return_value = _ucsc_payload(params)
        return response

    session.get.side_effect = _get
    return session


@pytest.fixture
def gene_models():
    """Gene model table built from the UCSC rows."""
    raw = pd.DataFrame(_ucsc_gene_rows())
    return transcripts_to_models(genepred_to_transcripts(raw))


# ============================================================================
# Settings
# ============================================================================


@pytest.fixture
def local_settings(tmp_path, bigwig_file, broadpeak_file, genepred_file, metadata_file):
    """Settings pointing every remote location at local fixture files."""
    return Settings(
        cache_dir=tmp_path / "cache",
        output_dir=tmp_path / "results",
        workspace_dir=tmp_path / "workspace",
        cell_type="H1",
        genome="hg19",
        chromosome="chrX",
        histone_mark="H3K4me3",
        metadata_url=str(metadata_file),
        methylation_url_template=str(bigwig_file.parent / "{eid}_RRBS_FractionalMethylation.bigwig"),
        peak_url_template=str(broadpeak_file.parent / "{eid}-{mark}.broadPeak.gz"),
        annotation_file=str(genepred_file),
        promoter_upstream=500,
        promoter_downstream=500,
        genes=["G1", "G2"],
        locus_padding=100,
        figure_format="json",
    )
