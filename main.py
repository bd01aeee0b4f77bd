from icp_registration.main import main

main(target_path="data/sample_target.ply",
     source_path="data/sample_source.ply",
     max_iterations=30,
     relative_fitness=1e-6,
     relative_rmse=1e-6,
     correspondence_threshold=0.05,
     normal_neighbors=30,
     output_dir="data/outputs"
     )
