EXPLANATIONS = {
    "ingest": (
        "Ingest reads delimited text and reports the inferred schema. "
        "Columns become Numeric when every non-missing value parses as a number, Text otherwise. "
        "Categorical conversion only happens when requested with --categorical."
    ),
    "group": (
        "Group splits the table by the --group-vars key columns and reports group sizes "
        "in first-appearance order."
    ),
    "plot": (
        "Plot binds --x and --y (both Numeric) and an optional --color column to a point chart. "
        "With --group-vars, one chart is written per group."
    ),
    "fit": (
        "Fit builds a design matrix from --formula or --response/--terms and solves ordinary least squares. "
        "Categorical terms use the first level as reference unless --reference overrides it. "
        "Rows with missing values are excluded and reported. Rank-deficient designs are rejected."
    ),
    "run-all": (
        "Run-all executes ingest, conversions, grouping, per-group charts, the model fit, "
        "residual diagnostics and diagnostic charts."
    ),
}
