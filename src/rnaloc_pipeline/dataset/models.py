"""Data models for the curated gene localization table."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator


class Category(str, Enum):
    """Subcellular localization category of a gene.

    DF is the diffuse/unclassified label; ER, TG and CY are the three
    compartments the partition coefficients are measured for. Member order
    is the factor level order used by the classifier.
    """

    DF = "DF"
    ER = "ER"
    TG = "TG"
    CY = "CY"


CATEGORY_LEVELS = [c.value for c in Category]

# Compartments in the order max_category scans them
COMPARTMENTS = ["er", "tg", "cy"]


class Covariate(str, Enum):
    """RBP binding and structural features used to predict the category."""

    # CLIP peak counts in the 3'UTR
    CLIP_TIS11B = "CLIP_TIS11B"
    CLIP_HuR = "CLIP_HuR"
    CLIP_PUM2 = "CLIP_PUM2"
    CLIP_TIA1 = "CLIP_TIA1"
    CLIP_TIAL1 = "CLIP_TIAL1"
    CLIP_LARP1 = "CLIP_LARP1"
    CLIP_IGF2BP1 = "CLIP_IGF2BP1"
    CLIP_IGF2BP2 = "CLIP_IGF2BP2"
    CLIP_IGF2BP3 = "CLIP_IGF2BP3"
    CLIP_FXR1 = "CLIP_FXR1"
    CLIP_FXR2 = "CLIP_FXR2"
    CLIP_FMR1 = "CLIP_FMR1"
    CLIP_QKI = "CLIP_QKI"
    CLIP_CAPRIN1 = "CLIP_CAPRIN1"
    CLIP_G3BP1 = "CLIP_G3BP1"
    CLIP_ATXN2 = "CLIP_ATXN2"
    CLIP_UPF1 = "CLIP_UPF1"
    CLIP_MOV10 = "CLIP_MOV10"
    CLIP_LIN28B = "CLIP_LIN28B"
    CLIP_TNRC6A = "CLIP_TNRC6A"
    CLIP_AGO2 = "CLIP_AGO2"
    CLIP_SRSF1 = "CLIP_SRSF1"
    CLIP_HNRNPC = "CLIP_HNRNPC"
    CLIP_STAU1 = "CLIP_STAU1"

    # Sequence motif counts in the 3'UTR
    Motif_ARE = "Motif_ARE"
    Motif_PRE = "Motif_PRE"
    Motif_CPE = "Motif_CPE"
    Motif_DRACH = "Motif_DRACH"
    Motif_G4 = "Motif_G4"
    Motif_PolyU = "Motif_PolyU"
    Motif_PAS = "Motif_PAS"

    # Annotated 3'UTR length (nt)
    Anno_3UTR_length = "Anno_3UTR_length"


COVARIATES = [c.value for c in Covariate]

# The only covariate where a missing value has no meaningful zero
LENGTH_COVARIATE = Covariate.Anno_3UTR_length.value

IDENTITY_COLUMNS = ["gene_name", "refseq_id"]
RAW_COEFFICIENT_COLUMNS = [f"pco_{c}" for c in COMPARTMENTS]
NORMALIZED_COEFFICIENT_COLUMNS = [f"npco_{c}" for c in COMPARTMENTS]

REQUIRED_COLUMNS = (
    IDENTITY_COLUMNS
    + ["category"]
    + RAW_COEFFICIENT_COLUMNS
    + NORMALIZED_COEFFICIENT_COLUMNS
    + COVARIATES
)

# Table name for DuckDB storage
GENE_TABLE_NAME = "gene_table"


class GeneRecord(BaseModel):
    """One gene (transcript) row of the curated localization table.

    Raw partition coefficients are compositional (they sum to 1 within
    floating tolerance); normalized coefficients are the raw ones divided
    by the rounded column median. Neither relation is enforced here, the
    validator checks them across the whole table.
    """

    gene_name: str = Field(description="Gene symbol")
    refseq_id: str = Field(description="Reference sequence (RefSeq) transcript ID")
    category: Optional[Category] = Field(
        default=None,
        description="Localization category (DF, ER, TG, CY); NULL before assignment",
    )

    # NULL coefficients are allowed; the validator reports them per gene
    pco_cy: Optional[float] = Field(ge=0.0, description="Cytosolic partition coefficient")
    pco_er: Optional[float] = Field(ge=0.0, description="ER partition coefficient")
    pco_tg: Optional[float] = Field(ge=0.0, description="TIS granule partition coefficient")

    npco_cy: Optional[float] = Field(description="Median-normalized cytosolic partition coefficient")
    npco_er: Optional[float] = Field(description="Median-normalized ER partition coefficient")
    npco_tg: Optional[float] = Field(description="Median-normalized TIS granule partition coefficient")

    covariates: dict[Covariate, Optional[float]] = Field(
        default_factory=dict,
        description="Covariate values keyed by covariate; NULL = missing",
    )

    @field_validator("covariates")
    @classmethod
    def check_covariates(cls, v: dict[Covariate, Optional[float]]) -> dict[Covariate, Optional[float]]:
        """Require every covariate to be present and non-negative when observed."""
        missing = [c.value for c in Covariate if c not in v]
        if missing:
            raise ValueError(f"Missing covariates: {missing}")
        negative = [c.value for c, value in v.items() if value is not None and value < 0]
        if negative:
            raise ValueError(f"Negative covariate values: {negative}")
        return v

    @classmethod
    def from_row(cls, row: dict) -> "GeneRecord":
        """Build a record from a flat table row (covariates as top-level keys)."""
        fields = {k: v for k, v in row.items() if k not in COVARIATES}
        fields["covariates"] = {Covariate(name): row.get(name) for name in COVARIATES}
        return cls(**fields)

    def to_row(self) -> dict:
        """Flatten the record back into a table row."""
        row = self.model_dump(exclude={"covariates"})
        row["category"] = self.category.value if self.category is not None else None
        row.update({c.value: value for c, value in self.covariates.items()})
        return row

    class Config:
        """Pydantic config."""
        validate_assignment = True
