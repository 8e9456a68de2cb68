# Runners package
